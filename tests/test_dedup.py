"""Tests for collapsing push commits into one event per distinct file."""

from schemasync.schemas.enums import FileItemType
from schemasync.schemas.webhooks import GitHubCommit, GitLabCommit
from schemasync.services.dedup import (
    dedup_migration_files,
    distinct_github_files,
    parse_commit_time,
)
from factories import gitlab_commit


def _commits(*raw: dict) -> list[GitLabCommit]:
    return [GitLabCommit.model_validate(commit) for commit in raw]


def test_single_commit_added_before_modified() -> None:
    commits = _commits(gitlab_commit("a", added=["x.sql"], modified=["y.sql"]))

    events = dedup_migration_files(commits)

    assert [(e.path, e.item_type) for e in events] == [
        ("x.sql", FileItemType.ADDED),
        ("y.sql", FileItemType.MODIFIED),
    ]


def test_merge_commit_duplicate_is_collapsed() -> None:
    """The same file in the feature commit and the merge commit yields one event."""
    commits = _commits(
        gitlab_commit("feature", timestamp="2026-10-01T10:00:00+00:00", added=["v1.sql"]),
        gitlab_commit("merge", timestamp="2026-10-01T11:00:00+00:00", added=["v1.sql"]),
    )

    events = dedup_migration_files(commits)

    assert len(events) == 1
    assert events[0].commit.id == "merge"


def test_latest_commit_wins_but_first_position_is_kept() -> None:
    commits = _commits(
        gitlab_commit("c1", timestamp="2026-10-01T10:00:00+00:00", added=["a.sql"]),
        gitlab_commit("c2", timestamp="2026-10-01T11:00:00+00:00", added=["b.sql"]),
        gitlab_commit("c3", timestamp="2026-10-01T12:00:00+00:00", modified=["a.sql"]),
    )

    events = dedup_migration_files(commits)

    assert [e.path for e in events] == ["a.sql", "b.sql"]
    assert events[0].commit.id == "c3"
    assert events[0].item_type == FileItemType.MODIFIED


def test_earlier_commit_does_not_replace_later_one() -> None:
    commits = _commits(
        gitlab_commit("late", timestamp="2026-10-01T12:00:00+00:00", added=["a.sql"]),
        gitlab_commit("early", timestamp="2026-10-01T09:00:00+00:00", modified=["a.sql"]),
    )

    events = dedup_migration_files(commits)

    assert events[0].commit.id == "late"


def test_equal_timestamps_keep_first_commit() -> None:
    commits = _commits(
        gitlab_commit("first", added=["a.sql"]),
        gitlab_commit("second", added=["a.sql"]),
    )

    assert dedup_migration_files(commits)[0].commit.id == "first"


def test_unparsable_timestamp_never_replaces() -> None:
    commits = _commits(
        gitlab_commit("good", timestamp="2026-10-01T10:00:00+00:00", added=["a.sql"]),
        gitlab_commit("bad", timestamp="yesterday", modified=["a.sql"]),
    )

    events = dedup_migration_files(commits)

    assert events[0].commit.id == "good"


def test_unparsable_timestamp_is_replaced_by_parsable_one() -> None:
    commits = _commits(
        gitlab_commit("bad", timestamp="", added=["a.sql"]),
        gitlab_commit("good", timestamp="2026-10-01T10:00:00+00:00", modified=["a.sql"]),
    )

    events = dedup_migration_files(commits)

    assert events[0].commit.id == "good"
    assert events[0].created_ts > 0


def test_unparsable_timestamp_yields_zero_created_ts() -> None:
    events = dedup_migration_files(_commits(gitlab_commit("bad", timestamp="nope", added=["a.sql"])))

    assert events[0].created_ts == 0


def test_empty_commit_list() -> None:
    assert dedup_migration_files([]) == []


def test_parse_commit_time_requires_offset() -> None:
    assert parse_commit_time("2026-10-01T10:00:00+02:00") is not None
    assert parse_commit_time("2026-10-01T10:00:00") is None
    assert parse_commit_time("not a time") is None


def test_distinct_github_files_skips_non_distinct_commits() -> None:
    commits = [
        GitHubCommit(id="a", timestamp="2026-10-01T10:00:00Z", added=["x.sql"]),
        GitHubCommit(id="b", distinct=False, timestamp="2026-10-01T10:00:00Z", added=["x.sql"]),
        GitHubCommit(id="c", timestamp="2026-10-01T10:00:00Z", modified=["y.sql"]),
    ]

    files = [(commit.id, path, item_type) for commit, path, item_type in distinct_github_files(commits)]

    assert files == [("a", "x.sql", FileItemType.ADDED), ("c", "y.sql", FileItemType.MODIFIED)]
