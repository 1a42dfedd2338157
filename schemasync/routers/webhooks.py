"""VCS push webhook router.

``POST /hook/github/{webhook_endpoint_id}`` and
``POST /hook/gitlab/{webhook_endpoint_id}`` turn push notifications into
schema and data change issues.  The response body lists one
``Created issue ...`` line per issue created by the push.
"""

from typing import Annotated

import httpx
import structlog
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from schemasync.config import settings
from schemasync.dependencies import get_http_client, get_schema_differ, get_store
from schemasync.services.orchestrator import PushOrchestrator, PushOutcome
from schemasync.services.reconciler import Reconciler
from schemasync.services.schema_diff import SchemaDiffer
from schemasync.services.store import Store

logger = structlog.get_logger()

router = APIRouter(prefix="/hook", tags=["webhooks"])


def get_orchestrator(
    store: Annotated[Store, Depends(get_store)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    differ: Annotated[SchemaDiffer, Depends(get_schema_differ)],
) -> PushOrchestrator:
    """Wire a push orchestrator for the current request."""
    reconciler = Reconciler(
        store,
        http_client,
        differ,
        system_bot_id=settings.system_bot_id,
        github_api_url=settings.github_api_url,
        multi_tenancy_enabled=settings.feature_multi_tenancy,
    )
    return PushOrchestrator(store, reconciler)


Orchestrator = Annotated[PushOrchestrator, Depends(get_orchestrator)]


def _respond(outcome: PushOutcome) -> Response:
    """Render a push outcome.

    Issues created before a failure are kept, so a partially failed push
    still reports them alongside the 500.
    """
    if outcome.failed_files:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Failed to create issue from repository push event",
                "failed_files": outcome.failed_files,
                "created": outcome.created_messages,
            },
        )
    return PlainTextResponse(outcome.body)


@router.post("/github/{webhook_endpoint_id}")
async def github_webhook(
    webhook_endpoint_id: str,
    request: Request,
    orchestrator: Orchestrator,
    x_github_event: Annotated[str, Header()] = "",
    x_hub_signature_256: Annotated[str, Header()] = "",
) -> Response:
    """Receive a GitHub push (or ping) webhook delivery."""
    body = await request.body()
    outcome = await orchestrator.handle_github(
        webhook_endpoint_id,
        event_type=x_github_event,
        signature=x_hub_signature_256,
        body=body,
    )
    if outcome is None:
        return PlainTextResponse("OK")
    logger.info(
        "github_push_processed",
        endpoint=webhook_endpoint_id,
        created=len(outcome.created_messages),
        failed=len(outcome.failed_files),
    )
    return _respond(outcome)


@router.post("/gitlab/{webhook_endpoint_id}")
async def gitlab_webhook(
    webhook_endpoint_id: str,
    request: Request,
    orchestrator: Orchestrator,
    x_gitlab_token: Annotated[str, Header()] = "",
) -> Response:
    """Receive a GitLab push hook delivery."""
    body = await request.body()
    outcome = await orchestrator.handle_gitlab(
        webhook_endpoint_id,
        token=x_gitlab_token,
        body=body,
    )
    logger.info(
        "gitlab_push_processed",
        endpoint=webhook_endpoint_id,
        created=len(outcome.created_messages),
        failed=len(outcome.failed_files),
    )
    return _respond(outcome)
