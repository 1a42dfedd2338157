"""Map a logical database name to the concrete databases of a project."""

from __future__ import annotations

from typing import TYPE_CHECKING

from schemasync.errors import (
    AmbiguityError,
    DependencyError,
    NotFoundError,
    SchemaSyncError,
    TenantEnvironmentError,
)
from schemasync.schemas.enums import TenantMode

if TYPE_CHECKING:
    from schemasync.schemas.bindings import DatabaseTarget
    from schemasync.services.store import Store


async def find_project_databases(
    store: Store,
    project_id: int,
    tenant_mode: TenantMode,
    db_name: str,
    env_name: str = "",
) -> list[DatabaseTarget]:
    """Return the databases named ``db_name`` in the project, narrowed by environment.

    Repositories organise migrations in one of three ways: one directory per
    environment with the same database name, one shared file applied to the
    same database name in every environment, or a different database name
    per environment. All three resolve here as long as no environment holds
    two databases with the name.

    Tenant mode projects fan out to every database with the name, so an
    environment filter makes no sense for them.

    Raises:
        NotFoundError: If no database matches the name (and environment).
        TenantEnvironmentError: If ``env_name`` is given for a tenant project.
        AmbiguityError: If two matches share an environment.
        DependencyError: If the store lookup fails.
    """
    try:
        databases = await store.find_databases(project_id=project_id, name=db_name)
    except SchemaSyncError:
        raise
    except Exception as exc:
        raise DependencyError(f"find database {db_name!r}: {exc}") from exc
    if not databases:
        raise NotFoundError(f"project {project_id} does not have database {db_name!r}")

    if tenant_mode == TenantMode.TENANT:
        if env_name:
            raise TenantEnvironmentError(project_id)
        return databases

    if env_name:
        wanted = env_name.casefold()
        databases = [
            database
            for database in databases
            if database.instance.environment_name.casefold() == wanted
        ]
        if not databases:
            msg = (
                f"project {project_id} does not have database {db_name!r} "
                f"for environment {env_name!r}"
            )
            raise NotFoundError(msg)

    seen: set[int] = set()
    for database in databases:
        environment_id = database.instance.environment_id
        if environment_id in seen:
            msg = (
                f"project {project_id} has multiple databases {db_name!r} "
                f"for environment {env_name or database.instance.environment_name!r}"
            )
            raise AmbiguityError(msg)
        seen.add(environment_id)
    return databases
