"""Reconcile one pushed file against one repository binding.

Decides whether the file creates a new issue, patches the statement of an
issue that has not been applied yet, or is ignored:

    start -> out of scope
          -> schema snapshot (SDL)    -> diff per database  -> create issue
          -> migration script         -> added: one detail per database -> create issue
                                      -> modified: patch pending task in place
          -> ignore (optionally with an ignored-file activity)

Failures scoped to one file or one database are converted into warning
activities; only issue creation failures raise ``InternalError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
import structlog
from pydantic_core import PydanticSerializationError
from sqlalchemy.exc import SQLAlchemyError

from schemasync.errors import (
    AmbiguityError,
    ContentFetchError,
    DependencyError,
    FeatureNotAvailableError,
    InternalError,
    MigrationInfoError,
    NotFoundError,
    TemplateError,
    TenantEnvironmentError,
)
from schemasync.logging_config import escape_for_logging
from schemasync.schemas.bindings import (
    ActivityCreate,
    IssueCreate,
    RepositoryBinding,
    TaskRef,
)
from schemasync.schemas.enums import (
    ActivityLevel,
    FileItemType,
    IssueType,
    MigrationSource,
    MigrationType,
    SchemaChangeType,
    TaskStatus,
    TaskType,
    TenantMode,
    VCSType,
)
from schemasync.schemas.push_event import (
    MigrationContext,
    MigrationDetail,
    MigrationInfo,
    PushEvent,
    RepositoryPushPayload,
)
from schemasync.services import path_template
from schemasync.services.database_resolver import find_project_databases
from schemasync.services.schema_diff import SchemaDiffer
from schemasync.services.store import Store
from schemasync.services.vcs_client import fetch_file_content, github_api_url

logger = structlog.get_logger()

FEATURE_MULTI_TENANCY = "bb.feature.multi-tenancy"

PATCHABLE_TASK_STATUSES = (TaskStatus.PENDING_APPROVAL, TaskStatus.FAILED)
PATCHABLE_TASK_TYPES = (TaskType.DATABASE_SCHEMA_UPDATE, TaskType.DATABASE_DATA_UPDATE)

SDL_DESCRIPTION = "Apply schema diff"


@dataclass
class ReconcileResult:
    """Outcome of reconciling one file against one repository binding."""

    message: str = ""
    created: bool = False
    activities: list[ActivityCreate] = field(default_factory=list)


def ignored_file_activity(
    binding: RepositoryBinding,
    push_event: PushEvent,
    file: str,
    reason: str,
    *,
    creator_id: int,
) -> ActivityCreate:
    """Build the warning activity recorded when a pushed file is ignored."""
    payload = RepositoryPushPayload(vcs_push_event=push_event)
    return ActivityCreate(
        creator_id=creator_id,
        container_id=binding.project_id,
        level=ActivityLevel.WARN,
        comment=f'Ignored file "{file}", {reason}.',
        payload=payload.model_dump_json(by_alias=True),
    )


class Reconciler:
    """Turn pushed files into schema and data change issues."""

    def __init__(
        self,
        store: Store,
        http_client: httpx.AsyncClient,
        schema_differ: SchemaDiffer,
        *,
        system_bot_id: int,
        github_api_url: str = "https://api.github.com",
        multi_tenancy_enabled: bool = True,
    ) -> None:
        self._store = store
        self._http = http_client
        self._differ = schema_differ
        self._system_bot_id = system_bot_id
        self._github_api_url = github_api_url
        self._multi_tenancy_enabled = multi_tenancy_enabled

    async def reconcile(
        self,
        push_event: PushEvent,
        binding: RepositoryBinding,
        file: str,
        item_type: FileItemType,
    ) -> ReconcileResult:
        """Create or patch the work item for ``file`` in ``binding``'s project.

        Raises:
            FeatureNotAvailableError: For tenant mode projects without multi-tenancy.
            InternalError: If the issue or its activity cannot be created.
        """
        project = binding.project
        if project.tenant_mode == TenantMode.TENANT and not self._multi_tenancy_enabled:
            raise FeatureNotAvailableError(FEATURE_MULTI_TENANCY)

        log = logger.bind(
            repo_id=binding.id, file=escape_for_logging(file), commit=push_event.file_commit.id
        )
        log.debug("processing_file", item_type=item_type.value)

        if not file.startswith(binding.base_directory):
            log.debug("ignored_file_outside_base_directory", base_directory=binding.base_directory)
            return ReconcileResult()

        try:
            schema_info = path_template.parse_schema_file_info(
                binding.base_directory, binding.schema_path_template, file
            )
        except TemplateError:
            log.debug("schema_path_template_invalid", exc_info=True)
            return ReconcileResult()

        if schema_info is not None and project.schema_change_type == SchemaChangeType.DDL:
            log.debug("ignored_schema_file_for_ddl_project")
            return ReconcileResult()

        if schema_info is not None:
            migration_info, details, activities, push_event = await self._prepare_sdl(
                binding, push_event, schema_info, file
            )
        else:
            try:
                migration_info = path_template.parse_migration_info(
                    file, binding.base_directory, binding.file_path_template
                )
            except (MigrationInfoError, TemplateError) as exc:
                log.debug("ignored_non_migration_file", reason=str(exc))
                return ReconcileResult()

            if (
                project.schema_change_type == SchemaChangeType.SDL
                and migration_info.type != MigrationType.DATA
            ):
                reason = (
                    "Only DATA type migration scripts are allowed "
                    f'but got "{migration_info.type.value}"'
                )
                activity = self._ignored(binding, push_event, file, reason)
                return ReconcileResult(activities=[activity])

            details, activities = await self._prepare_ddl(
                binding, push_event, file, item_type, migration_info
            )

        if migration_info is None or not details:
            return ReconcileResult(activities=activities)

        return await self._create_issue(binding, push_event, file, migration_info, details, activities)

    # -----------------------------------------------------------------------
    # Schema snapshots (SDL)
    # -----------------------------------------------------------------------

    async def _prepare_sdl(
        self,
        binding: RepositoryBinding,
        push_event: PushEvent,
        schema_info: dict[str, str],
        file: str,
    ) -> tuple[MigrationInfo | None, list[MigrationDetail], list[ActivityCreate], PushEvent]:
        db_name = schema_info.get(path_template.DB_NAME, "")
        if not db_name:
            logger.debug("ignored_schema_file_without_database_name", file=file)
            return None, [], [], push_event

        try:
            content = await self._read_file_content(binding, push_event, file)
        except ContentFetchError as exc:
            reason = f"Failed to read file content: {exc}"
            return None, [], [self._ignored(binding, push_event, file, reason)], push_event

        env_name = schema_info.get(path_template.ENV_NAME, "")
        details: list[MigrationDetail] = []
        activities: list[ActivityCreate] = []

        if binding.project.tenant_mode == TenantMode.TENANT:
            details.append(MigrationDetail(database_name=db_name, statement=content))
        else:
            try:
                databases = await find_project_databases(
                    self._store, binding.project_id, binding.project.tenant_mode, db_name, env_name
                )
            except (NotFoundError, AmbiguityError, TenantEnvironmentError, DependencyError) as exc:
                reason = f"Failed to find project databases: {exc}"
                return None, [], [self._ignored(binding, push_event, file, reason)], push_event

            for database in databases:
                try:
                    diff = await self._differ.compute(database, content)
                except DependencyError as exc:
                    logger.warning(
                        "schema_diff_failed", database_id=database.id, file=file, error=str(exc)
                    )
                    reason = f"Failed to compute database schema diff: {exc}"
                    activities.append(self._ignored(binding, push_event, file, reason))
                    continue
                if not diff:
                    logger.debug("schema_already_up_to_date", database_id=database.id, file=file)
                    continue
                details.append(MigrationDetail(database_id=database.id, statement=diff))

        migration_info = MigrationInfo(
            version=path_template.default_migration_version(),
            namespace=db_name,
            database=db_name,
            environment=env_name,
            source=MigrationSource.VCS,
            type=MigrationType.MIGRATE,
            description=SDL_DESCRIPTION,
        )
        rendered = path_template.render(
            binding.file_path_template,
            {
                path_template.ENV_NAME: env_name,
                path_template.DB_NAME: db_name,
                path_template.VERSION: migration_info.version,
                path_template.TYPE: migration_info.type.value.lower(),
                path_template.DESCRIPTION: migration_info.description.replace(" ", "_"),
            },
        )
        file_commit = push_event.file_commit.model_copy(
            update={"added": path_template.join(binding.base_directory, rendered)}
        )
        push_event = push_event.model_copy(update={"file_commit": file_commit})
        return migration_info, details, activities, push_event

    # -----------------------------------------------------------------------
    # Migration scripts (DDL, and data changes in SDL projects)
    # -----------------------------------------------------------------------

    async def _prepare_ddl(
        self,
        binding: RepositoryBinding,
        push_event: PushEvent,
        file: str,
        item_type: FileItemType,
        migration_info: MigrationInfo,
    ) -> tuple[list[MigrationDetail], list[ActivityCreate]]:
        try:
            content = await self._read_file_content(binding, push_event, file)
        except ContentFetchError as exc:
            reason = f"Failed to read file content: {exc}"
            return [], [self._ignored(binding, push_event, file, reason)]

        # TODO: patch pending tasks of tenant mode projects on modified files.
        if binding.project.tenant_mode == TenantMode.TENANT:
            detail = MigrationDetail(
                database_name=migration_info.database,
                statement=content,
                schema_version=migration_info.version,
            )
            return [detail], []

        try:
            databases = await find_project_databases(
                self._store,
                binding.project_id,
                binding.project.tenant_mode,
                migration_info.database,
                migration_info.environment,
            )
        except (NotFoundError, AmbiguityError, TenantEnvironmentError, DependencyError) as exc:
            reason = f"Failed to find project databases: {exc}"
            return [], [self._ignored(binding, push_event, file, reason)]

        if item_type == FileItemType.ADDED:
            details = [
                MigrationDetail(
                    database_id=database.id,
                    statement=content,
                    schema_version=migration_info.version,
                )
                for database in databases
            ]
            return details, []

        for database in databases:
            try:
                tasks = await self._store.find_tasks(
                    database_id=database.id,
                    statuses=PATCHABLE_TASK_STATUSES,
                    types=PATCHABLE_TASK_TYPES,
                    schema_version=migration_info.version,
                )
            except Exception as exc:
                logger.exception("find_pending_tasks_failed", database_id=database.id, file=file)
                reason = f"Failed to find project task: {exc}"
                return [], [self._ignored(binding, push_event, file, reason)]
            if not tasks:
                continue
            if len(tasks) > 1:
                logger.error(
                    "multiple_patchable_tasks_for_modified_file",
                    database_id=database.id,
                    schema_version=migration_info.version,
                    task_ids=[task.id for task in tasks],
                )
                return [], []
            if not await self._patch_task(tasks[0], content, file):
                return [], []
        return [], []

    async def _patch_task(self, task: TaskRef, statement: str, file: str) -> bool:
        logger.debug(
            "patching_task_for_modified_file", file=file, issue_id=task.issue_id, task_id=task.id
        )
        try:
            patched = await self._store.patch_task_statement(task, statement, self._system_bot_id)
        except Exception:
            logger.exception("patch_task_failed", issue_id=task.issue_id, task_id=task.id)
            return False
        if not patched:
            logger.warning(
                "patch_task_conflict", issue_id=task.issue_id, task_id=task.id, version=task.version
            )
        return patched

    # -----------------------------------------------------------------------
    # Collaborators
    # -----------------------------------------------------------------------

    async def _read_file_content(
        self, binding: RepositoryBinding, push_event: PushEvent, file: str
    ) -> str:
        """Read ``file`` at the pushed commit, re-reading the stored access token first.

        Raises:
            ContentFetchError: If the repository or file cannot be read.
        """
        try:
            current = await self._store.get_repository(binding.id)
        except Exception as exc:
            raise ContentFetchError(f"get repository {binding.id}: {exc}") from exc
        if current is None or current.vcs is None:
            raise ContentFetchError(f"repository {binding.id} not found")

        vcs = current.vcs
        if vcs.type == VCSType.GITHUB:
            api_url = vcs.api_url or github_api_url(vcs.instance_url, self._github_api_url)
        else:
            api_url = vcs.api_url or vcs.instance_url.rstrip("/")

        async def refresh_token() -> str | None:
            latest = await self._store.get_repository(binding.id)
            return latest.access_token if latest is not None else None

        try:
            content = await fetch_file_content(
                self._http,
                vcs.type,
                api_url,
                current.external_id,
                file,
                push_event.file_commit.id,
                current.access_token,
                refresher=refresh_token,
            )
        except httpx.HTTPError as exc:
            raise ContentFetchError(f"read content: {exc}") from exc
        except SQLAlchemyError as exc:
            raise ContentFetchError(f"refresh access token: {exc}") from exc
        if content is None:
            raise ContentFetchError(f"file {file!r} not found at commit {push_event.file_commit.id}")
        return content

    async def _resolve_creator(self, email: str) -> int:
        if not email:
            return self._system_bot_id
        try:
            principal = await self._store.get_principal_by_email(email)
        except Exception:
            logger.exception("find_principal_by_email_failed", email=email)
            return self._system_bot_id
        if principal is None:
            logger.debug("principal_not_found_using_system_bot", email=email)
            return self._system_bot_id
        return principal.id

    def _ignored(
        self, binding: RepositoryBinding, push_event: PushEvent, file: str, reason: str
    ) -> ActivityCreate:
        return ignored_file_activity(
            binding, push_event, file, reason, creator_id=self._system_bot_id
        )

    # -----------------------------------------------------------------------
    # Issue materialisation
    # -----------------------------------------------------------------------

    async def _create_issue(
        self,
        binding: RepositoryBinding,
        push_event: PushEvent,
        file: str,
        migration_info: MigrationInfo,
        details: list[MigrationDetail],
        activities: list[ActivityCreate],
    ) -> ReconcileResult:
        creator_id = await self._resolve_creator(push_event.file_commit.author_email)
        is_data = migration_info.type == MigrationType.DATA
        issue_type = IssueType.DATABASE_DATA_UPDATE if is_data else IssueType.DATABASE_SCHEMA_UPDATE

        try:
            create_context = MigrationContext(
                migration_type=migration_info.type,
                vcs_push_event=push_event,
                detail_list=details,
            ).model_dump_json(by_alias=True)
        except PydanticSerializationError as exc:
            raise InternalError("Failed to marshal update schema context") from exc

        relative = file.removeprefix(f"{binding.base_directory}/") if binding.base_directory else file
        issue_create = IssueCreate(
            project_id=binding.project_id,
            name=f"{migration_info.description} by {relative}",
            type=issue_type,
            description=push_event.file_commit.message,
            assignee_id=self._system_bot_id,
            create_context=create_context,
        )
        try:
            issue = await self._store.create_issue(issue_create, creator_id)
        except Exception as exc:
            kind = "data" if is_data else "schema"
            logger.exception("create_issue_failed", repo_id=binding.id, file=file)
            raise InternalError(f"Failed to create {kind} update issue") from exc

        payload = RepositoryPushPayload(
            vcs_push_event=push_event, issue_id=issue.id, issue_name=issue.name
        )
        activity = ActivityCreate(
            creator_id=creator_id,
            container_id=binding.project_id,
            level=ActivityLevel.INFO,
            comment=f'Created issue "{issue.name}".',
            payload=payload.model_dump_json(by_alias=True),
        )
        try:
            await self._store.create_activity(activity)
        except Exception as exc:
            logger.exception("create_issue_activity_failed", issue_id=issue.id)
            msg = (
                "Failed to create project activity after creating issue "
                f"from repository push event: {issue.id}"
            )
            raise InternalError(msg) from exc

        logger.info("issue_created", issue_id=issue.id, issue_name=issue.name, file=file)
        return ReconcileResult(
            message=f'Created issue "{issue.name}" on adding {file}',
            created=True,
            activities=activities,
        )
