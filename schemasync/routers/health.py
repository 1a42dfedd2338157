"""Health check endpoint with metadata database connectivity verification."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from schemasync.config import settings
from schemasync.db.session import get_db_session
from schemasync.schemas.health import HealthResponse

router = APIRouter()

DBSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/healthz", response_model=HealthResponse)
async def healthz(db: DBSession) -> HealthResponse:
    """Run ``SELECT 1`` against the metadata store; failures propagate as 500."""
    await db.execute(text("SELECT 1"))
    return HealthResponse(
        status="ok",
        database="connected",
        multi_tenancy=settings.feature_multi_tenancy,
    )
