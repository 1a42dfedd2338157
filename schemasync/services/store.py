"""Storage abstraction with protocol-based swappable implementations.

Production code uses ``SQLStore`` which wraps the request's
``AsyncSession``.  Tests use ``InMemoryStore`` which keeps rows in plain
lists so reconciliation can be exercised without PostgreSQL.

Every write is a single statement or runs inside a savepoint, so a failure
while reconciling one file leaves the session usable for the next file.
"""

from __future__ import annotations

import itertools
import json
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schemasync.db.models import Activity, Database, Issue, Principal, Repository, Task
from schemasync.schemas.bindings import (
    ActivityCreate,
    DatabaseTarget,
    InstanceInfo,
    IssueCreate,
    IssueRef,
    PrincipalInfo,
    RepositoryBinding,
    TaskRef,
)
from schemasync.schemas.enums import IssueType, TaskStatus, TaskType
from schemasync.schemas.push_event import MigrationContext

_TASK_TYPE_FOR_ISSUE = {
    IssueType.DATABASE_SCHEMA_UPDATE: TaskType.DATABASE_SCHEMA_UPDATE,
    IssueType.DATABASE_DATA_UPDATE: TaskType.DATABASE_DATA_UPDATE,
}


class Store(Protocol):
    """Protocol for the persistent state touched while reconciling a push."""

    async def find_repositories(self, webhook_endpoint_id: str) -> list[RepositoryBinding]:
        """Return every repository binding registered under a webhook endpoint."""
        ...

    async def get_repository(self, repository_id: int) -> RepositoryBinding | None:
        """Return a repository binding with its current access token."""
        ...

    async def find_databases(self, *, project_id: int, name: str) -> list[DatabaseTarget]:
        """Return the project's databases with the given name."""
        ...

    async def find_tasks(
        self,
        *,
        database_id: int,
        statuses: Sequence[TaskStatus],
        types: Sequence[TaskType],
        schema_version: str,
    ) -> list[TaskRef]:
        """Return tasks of a database matching status, type and payload schema version."""
        ...

    async def patch_task_statement(self, task: TaskRef, statement: str, updater_id: int) -> bool:
        """Replace a task's statement if it is unchanged since ``task`` was read.

        Returns False when another writer got there first.
        """
        ...

    async def get_principal_by_email(self, email: str) -> PrincipalInfo | None:
        """Return the principal with the given email, if any."""
        ...

    async def create_issue(self, issue: IssueCreate, creator_id: int) -> IssueRef:
        """Create an issue and one pending-approval task per targeted database."""
        ...

    async def create_activity(self, activity: ActivityCreate) -> None:
        """Persist an audit record."""
        ...


def _binding_from_row(row: Repository) -> RepositoryBinding:
    return RepositoryBinding.model_validate(row)


def _database_from_row(row: Database) -> DatabaseTarget:
    instance = row.instance
    return DatabaseTarget(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        instance=InstanceInfo(
            id=instance.id,
            engine=instance.engine,
            host=instance.host,
            port=instance.port,
            username=instance.username,
            password=instance.password,
            environment_id=instance.environment_id,
            environment_name=instance.environment.name,
        ),
    )


def _task_from_row(row: Task) -> TaskRef:
    return TaskRef(
        id=row.id,
        issue_id=row.issue_id,
        database_id=row.database_id,
        status=row.status,
        type=row.type,
        statement=row.statement,
        schema_version=(row.payload or {}).get("schemaVersion", ""),
        version=row.version,
    )


def _tasks_for_issue(issue: IssueCreate) -> list[dict]:
    """Build task column values from the migration details of an issue.

    Details addressed by database name (tenant mode) are expanded when the
    pipeline is scheduled, so only details with a database id become tasks.
    """
    context = MigrationContext.model_validate_json(issue.create_context)
    task_type = _TASK_TYPE_FOR_ISSUE[issue.type]
    return [
        {
            "database_id": detail.database_id,
            "name": issue.name,
            "status": TaskStatus.PENDING_APPROVAL.value,
            "type": task_type.value,
            "statement": detail.statement,
            "payload": {"schemaVersion": detail.schema_version},
        }
        for detail in context.detail_list
        if detail.database_id is not None
    ]


class SQLStore:
    """Production implementation backed by the request's SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_repositories(self, webhook_endpoint_id: str) -> list[RepositoryBinding]:
        result = await self._session.execute(
            select(Repository)
            .where(Repository.webhook_endpoint_id == webhook_endpoint_id)
            .order_by(Repository.id)
        )
        return [_binding_from_row(row) for row in result.scalars().all()]

    async def get_repository(self, repository_id: int) -> RepositoryBinding | None:
        result = await self._session.execute(
            select(Repository)
            .where(Repository.id == repository_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _binding_from_row(row) if row is not None else None

    async def find_databases(self, *, project_id: int, name: str) -> list[DatabaseTarget]:
        result = await self._session.execute(
            select(Database)
            .where(Database.project_id == project_id, Database.name == name)
            .order_by(Database.id)
        )
        return [_database_from_row(row) for row in result.scalars().all()]

    async def find_tasks(
        self,
        *,
        database_id: int,
        statuses: Sequence[TaskStatus],
        types: Sequence[TaskType],
        schema_version: str,
    ) -> list[TaskRef]:
        result = await self._session.execute(
            select(Task)
            .where(
                Task.database_id == database_id,
                Task.status.in_([status.value for status in statuses]),
                Task.type.in_([task_type.value for task_type in types]),
                Task.payload["schemaVersion"].as_string() == schema_version,
            )
            .order_by(Task.id)
        )
        return [_task_from_row(row) for row in result.scalars().all()]

    async def patch_task_statement(self, task: TaskRef, statement: str, updater_id: int) -> bool:
        result = await self._session.execute(
            update(Task)
            .where(
                Task.id == task.id,
                Task.version == task.version,
                Task.status == task.status.value,
            )
            .values(statement=statement, updater_id=updater_id, version=Task.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_principal_by_email(self, email: str) -> PrincipalInfo | None:
        result = await self._session.execute(select(Principal).where(Principal.email == email))
        row = result.scalar_one_or_none()
        return PrincipalInfo.model_validate(row) if row is not None else None

    async def create_issue(self, issue: IssueCreate, creator_id: int) -> IssueRef:
        tasks = _tasks_for_issue(issue)
        async with self._session.begin_nested():
            row = Issue(
                project_id=issue.project_id,
                creator_id=creator_id,
                assignee_id=issue.assignee_id,
                name=issue.name,
                type=issue.type.value,
                description=issue.description,
                create_context=json.loads(issue.create_context),
            )
            self._session.add(row)
            await self._session.flush()
            for values in tasks:
                self._session.add(Task(issue_id=row.id, **values))
            await self._session.flush()
        return IssueRef(id=row.id, name=row.name)

    async def create_activity(self, activity: ActivityCreate) -> None:
        async with self._session.begin_nested():
            self._session.add(
                Activity(
                    creator_id=activity.creator_id,
                    container_id=activity.container_id,
                    type=activity.type.value,
                    level=activity.level.value,
                    comment=activity.comment,
                    payload=activity.payload,
                )
            )
            await self._session.flush()


class InMemoryStore:
    """Test double that keeps rows in lists and records writes for assertions."""

    def __init__(
        self,
        *,
        repositories: Sequence[RepositoryBinding] = (),
        databases: Sequence[DatabaseTarget] = (),
        tasks: Sequence[TaskRef] = (),
        principals: Sequence[PrincipalInfo] = (),
    ) -> None:
        self.repositories: list[RepositoryBinding] = list(repositories)
        self.databases: list[DatabaseTarget] = list(databases)
        self.tasks: list[TaskRef] = list(tasks)
        self.principals: list[PrincipalInfo] = list(principals)
        self.issues: list[tuple[IssueRef, IssueCreate, int]] = []
        self.activities: list[ActivityCreate] = []
        self._ids = itertools.count(1000)

    async def find_repositories(self, webhook_endpoint_id: str) -> list[RepositoryBinding]:
        return [r for r in self.repositories if r.webhook_endpoint_id == webhook_endpoint_id]

    async def get_repository(self, repository_id: int) -> RepositoryBinding | None:
        return next((r for r in self.repositories if r.id == repository_id), None)

    async def find_databases(self, *, project_id: int, name: str) -> list[DatabaseTarget]:
        return [d for d in self.databases if d.project_id == project_id and d.name == name]

    async def find_tasks(
        self,
        *,
        database_id: int,
        statuses: Sequence[TaskStatus],
        types: Sequence[TaskType],
        schema_version: str,
    ) -> list[TaskRef]:
        return [
            t
            for t in self.tasks
            if t.database_id == database_id
            and t.status in statuses
            and t.type in types
            and t.schema_version == schema_version
        ]

    async def patch_task_statement(self, task: TaskRef, statement: str, updater_id: int) -> bool:
        for index, current in enumerate(self.tasks):
            if (
                current.id == task.id
                and current.version == task.version
                and current.status == task.status
            ):
                self.tasks[index] = current.model_copy(
                    update={"statement": statement, "version": current.version + 1}
                )
                return True
        return False

    async def get_principal_by_email(self, email: str) -> PrincipalInfo | None:
        return next((p for p in self.principals if p.email == email), None)

    async def create_issue(self, issue: IssueCreate, creator_id: int) -> IssueRef:
        ref = IssueRef(id=next(self._ids), name=issue.name)
        for values in _tasks_for_issue(issue):
            self.tasks.append(
                TaskRef(
                    id=next(self._ids),
                    issue_id=ref.id,
                    database_id=values["database_id"],
                    status=values["status"],
                    type=values["type"],
                    statement=values["statement"],
                    schema_version=values["payload"]["schemaVersion"],
                )
            )
        self.issues.append((ref, issue, creator_id))
        return ref

    async def create_activity(self, activity: ActivityCreate) -> None:
        self.activities.append(activity)
