"""Collapse a push's commit list into one event per distinct file.

A merge request usually delivers the same migration file twice: once in the
original feature branch commit and once in the merge commit. Creating an
issue per delivery would duplicate the schema change, so files are
deduplicated before reconciliation:

1. For a path seen several times, the entry from the latest commit wins.
   This matters for schema snapshots, whose file name never changes.
2. Paths keep the order in which they first appeared, so migration A seen
   before migration B still produces its issue first.

Only GitLab needs this. GitHub marks superseded commits with
``distinct: false`` and those are skipped instead.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime

import structlog

from schemasync.schemas.enums import FileItemType
from schemasync.schemas.webhooks import GitHubCommit, GitLabCommit

logger = structlog.get_logger()


@dataclass(frozen=True)
class DistinctFileEvent:
    """The deduplicated unit of work: one file path and the commit it came from."""

    path: str
    item_type: FileItemType
    commit: GitLabCommit
    created_time: datetime | None

    @property
    def created_ts(self) -> int:
        return int(self.created_time.timestamp()) if self.created_time else 0


def parse_commit_time(timestamp: str) -> datetime | None:
    """Parse an RFC 3339 commit timestamp, returning None when it is unusable."""
    try:
        parsed = datetime.fromisoformat(timestamp)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def _is_later(candidate: datetime | None, current: datetime | None) -> bool:
    if candidate is None:
        return False
    return current is None or candidate > current


def dedup_migration_files(commits: Iterable[GitLabCommit]) -> list[DistinctFileEvent]:
    """Return one ``DistinctFileEvent`` per path, in first-occurrence order.

    Within a commit, added paths are visited before modified paths. A path
    already present is replaced in place only when the new commit is strictly
    later; a commit whose timestamp cannot be parsed never replaces anything.
    """
    events: list[DistinctFileEvent] = []
    positions: dict[str, int] = {}

    for commit in commits:
        logger.debug("dedup_commit", commit_id=commit.id, title=commit.title)
        created_time = parse_commit_time(commit.timestamp)
        if created_time is None:
            logger.warning(
                "commit_timestamp_unparsable",
                commit_id=commit.id,
                timestamp=commit.timestamp,
            )

        for path, item_type in _commit_files(commit):
            event = DistinctFileEvent(path, item_type, commit, created_time)
            position = positions.get(path)
            if position is None:
                positions[path] = len(events)
                events.append(event)
            elif _is_later(created_time, events[position].created_time):
                events[position] = event

    return events


def distinct_github_files(
    commits: Iterable[GitHubCommit],
) -> Iterator[tuple[GitHubCommit, str, FileItemType]]:
    """Yield ``(commit, path, item_type)`` for every file of every distinct commit."""
    for commit in commits:
        if not commit.distinct:
            continue
        for path, item_type in _commit_files(commit):
            yield commit, path, item_type


def _commit_files(commit: GitHubCommit | GitLabCommit) -> Iterator[tuple[str, FileItemType]]:
    for path in commit.added:
        yield path, FileItemType.ADDED
    for path in commit.modified:
        yield path, FileItemType.MODIFIED
