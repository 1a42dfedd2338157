"""Per-request orchestration of GitHub and GitLab push notifications.

Each provider handler resolves the repository bindings registered under the
webhook endpoint, keeps the ones the push is addressed to, reduces the
commits to file events and reconciles every file against every eligible
binding.  Provider payloads are translated into ``PushEvent`` here so the
reconciler never branches on the provider.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial

import structlog
from pydantic import ValidationError as PydanticValidationError

from schemasync.errors import FeatureNotAvailableError, NotFoundError, RequestError
from schemasync.logging_config import escape_for_logging
from schemasync.schemas.bindings import ActivityCreate, RepositoryBinding
from schemasync.schemas.enums import FileItemType, VCSType
from schemasync.schemas.push_event import FileCommit, PushEvent
from schemasync.schemas.webhooks import (
    GITHUB_EVENT_PING,
    GITHUB_EVENT_PUSH,
    GITLAB_OBJECT_KIND_PUSH,
    GitHubCommit,
    GitHubPushEvent,
    GitLabPushEvent,
)
from schemasync.services.dedup import (
    DistinctFileEvent,
    dedup_migration_files,
    distinct_github_files,
)
from schemasync.services.reconciler import Reconciler
from schemasync.services.signature import (
    filter_bindings,
    parse_branch_from_ref,
    validate_github_signature,
    validate_gitlab_token,
)
from schemasync.services.store import Store

logger = structlog.get_logger()


@dataclass
class PushOutcome:
    """Messages for created issues and the files whose issue creation failed."""

    created_messages: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        return "\n".join(self.created_messages)


@dataclass(frozen=True)
class _FileWork:
    path: str
    item_type: FileItemType
    push_event: Callable[[RepositoryBinding], PushEvent]


def github_push_event(
    binding: RepositoryBinding, payload: GitHubPushEvent, commit: GitHubCommit, path: str
) -> PushEvent:
    """Translate one file of a GitHub push into a ``PushEvent`` for ``binding``."""
    return PushEvent(
        vcs_type=VCSType.GITHUB,
        base_directory=binding.base_directory,
        ref=payload.ref,
        repository_id=str(payload.repository.id),
        repository_url=payload.repository.html_url,
        repository_full_path=payload.repository.full_name,
        author_name=payload.sender.login,
        file_commit=_github_file_commit(commit, path),
    )


def _github_file_commit(commit: GitHubCommit, path: str) -> FileCommit:
    return FileCommit(
        id=commit.id,
        title=commit.title,
        message=commit.message,
        created_ts=int(commit.timestamp.timestamp()),
        url=commit.url,
        author_name=commit.author.name,
        author_email=commit.author.email,
        added=escape_for_logging(path),
    )


def gitlab_push_event(
    binding: RepositoryBinding, payload: GitLabPushEvent, item: DistinctFileEvent
) -> PushEvent:
    """Translate one deduplicated file of a GitLab push into a ``PushEvent`` for ``binding``."""
    return PushEvent(
        vcs_type=VCSType.GITLAB,
        base_directory=binding.base_directory,
        ref=payload.ref,
        repository_id=str(payload.project.id),
        repository_url=payload.project.web_url,
        repository_full_path=payload.project.path_with_namespace,
        author_name=payload.user_name,
        file_commit=_gitlab_file_commit(item),
    )


def _gitlab_file_commit(item: DistinctFileEvent) -> FileCommit:
    commit = item.commit
    return FileCommit(
        id=commit.id,
        title=commit.title,
        message=commit.message,
        created_ts=item.created_ts,
        url=commit.url,
        author_name=commit.author.name,
        author_email=commit.author.email,
        added=escape_for_logging(item.path),
    )


class PushOrchestrator:
    """Handle one push notification from start to finish."""

    def __init__(self, store: Store, reconciler: Reconciler) -> None:
        self._store = store
        self._reconciler = reconciler

    async def _find_bindings(self, webhook_endpoint_id: str) -> list[RepositoryBinding]:
        bindings = await self._store.find_repositories(webhook_endpoint_id)
        if not bindings:
            raise NotFoundError(f"Webhook endpoint not found: {webhook_endpoint_id}")
        return bindings

    async def handle_github(
        self,
        webhook_endpoint_id: str,
        *,
        event_type: str,
        signature: str,
        body: bytes,
    ) -> PushOutcome | None:
        """Process a GitHub webhook delivery.

        Returns None for ``ping`` deliveries.

        Raises:
            RequestError: For unsupported event types, malformed bodies or refs.
            NotFoundError: If no repository is bound to the endpoint.
        """
        if event_type == GITHUB_EVENT_PING:
            return None
        if event_type != GITHUB_EVENT_PUSH:
            msg = f"Invalid webhook event type, got {event_type}, want {GITHUB_EVENT_PUSH}"
            raise RequestError(msg)

        bindings = await self._find_bindings(webhook_endpoint_id)
        try:
            payload = GitHubPushEvent.model_validate_json(body)
        except PydanticValidationError as exc:
            raise RequestError("Malformed push event") from exc
        branch = parse_branch_from_ref(payload.ref)

        eligible = filter_bindings(
            bindings,
            branch=branch,
            external_id=payload.repository.full_name,
            authenticate=lambda binding: validate_github_signature(
                signature, binding.webhook_secret_token, body
            ),
        )
        logger.debug("processing_push_event", repo_ids=[binding.id for binding in eligible])

        work = [
            _FileWork(
                path,
                item_type,
                partial(github_push_event, payload=payload, commit=commit, path=path),
            )
            for commit, path, item_type in distinct_github_files(payload.commits)
        ]
        return await self._reconcile_files(eligible, work)

    async def handle_gitlab(
        self,
        webhook_endpoint_id: str,
        *,
        token: str,
        body: bytes,
    ) -> PushOutcome:
        """Process a GitLab push hook delivery.

        Raises:
            RequestError: For non-push events, malformed bodies or refs.
            NotFoundError: If no repository is bound to the endpoint.
        """
        try:
            payload = GitLabPushEvent.model_validate_json(body)
        except PydanticValidationError as exc:
            raise RequestError("Malformed push event") from exc
        if payload.object_kind != GITLAB_OBJECT_KIND_PUSH:
            msg = (
                f"Invalid webhook event type, got {payload.object_kind}, "
                f"want {GITLAB_OBJECT_KIND_PUSH}"
            )
            raise RequestError(msg)
        branch = parse_branch_from_ref(payload.ref)
        bindings = await self._find_bindings(webhook_endpoint_id)

        eligible = filter_bindings(
            bindings,
            branch=branch,
            external_id=str(payload.project.id),
            authenticate=lambda binding: validate_gitlab_token(token, binding.webhook_secret_token),
        )
        logger.debug("processing_push_event", repo_ids=[binding.id for binding in eligible])

        work = [
            _FileWork(
                item.path,
                item.item_type,
                partial(gitlab_push_event, payload=payload, item=item),
            )
            for item in dedup_migration_files(payload.commits)
        ]
        return await self._reconcile_files(eligible, work)

    async def _reconcile_files(
        self, eligible: list[RepositoryBinding], work: list[_FileWork]
    ) -> PushOutcome:
        outcome = PushOutcome()
        for item in work:
            created: list[str] = []
            ignored: dict[int, list[ActivityCreate]] = {}
            for binding in eligible:
                push_event = item.push_event(binding)
                try:
                    result = await self._reconciler.reconcile(
                        push_event, binding, item.path, item.item_type
                    )
                except FeatureNotAvailableError as exc:
                    logger.warning("feature_not_available", repo_id=binding.id, feature=exc.feature)
                    continue
                except Exception:
                    logger.exception("reconcile_file_failed", repo_id=binding.id, file=item.path)
                    outcome.failed_files.append(item.path)
                    continue
                if result.created:
                    created.append(result.message)
                ignored.setdefault(binding.id, []).extend(result.activities)

            if not created:
                logger.debug("ignored_push_event_file", file=item.path)
                await self._record_ignored(ignored)
            outcome.created_messages.extend(created)

        if not outcome.created_messages:
            logger.warning(
                "ignored_push_event_no_applicable_file",
                repo_ids=[binding.id for binding in eligible],
            )
        return outcome

    async def _record_ignored(self, ignored: dict[int, list[ActivityCreate]]) -> None:
        for activities in ignored.values():
            for activity in activities:
                try:
                    await self._store.create_activity(activity)
                except Exception:
                    logger.warning("create_ignored_file_activity_failed", exc_info=True)
