"""Unit tests for SQLAlchemy ORM model metadata.

These tests inspect model table definitions, columns and indexes without
requiring a database connection.
"""

from schemasync.db.models import Activity, Database, Issue, Repository, Task


class TestTableNames:
    """Verify each model maps to the expected table name."""

    def test_repository_table_name(self) -> None:
        assert Repository.__tablename__ == "repositories"

    def test_task_table_name(self) -> None:
        assert Task.__tablename__ == "tasks"

    def test_activity_table_name(self) -> None:
        assert Activity.__tablename__ == "activities"


class TestRepositoryColumns:
    def test_has_expected_columns(self) -> None:
        column_names = {c.name for c in Repository.__table__.columns}
        expected = {
            "id",
            "project_id",
            "vcs_id",
            "webhook_endpoint_id",
            "web_url",
            "branch_filter",
            "base_directory",
            "file_path_template",
            "schema_path_template",
            "external_id",
            "webhook_secret_token",
            "access_token",
            "refresh_token",
        }
        assert column_names == expected

    def test_webhook_endpoint_id_is_indexed(self) -> None:
        assert Repository.__table__.c.webhook_endpoint_id.index is True


class TestTaskColumns:
    """Verify Task carries the concurrency token and payload used for patching."""

    def test_has_version_and_payload(self) -> None:
        column_names = {c.name for c in Task.__table__.columns}
        assert {"version", "payload", "statement", "status", "type", "database_id"} <= column_names

    def test_database_status_index(self) -> None:
        index_names = {index.name for index in Task.__table__.indexes}
        assert "ix_tasks_database_status" in index_names


class TestDatabaseConstraints:
    def test_unique_name_per_instance(self) -> None:
        names = {constraint.name for constraint in Database.__table__.constraints}
        assert "uq_databases_instance_name" in names


class TestIssueColumns:
    def test_create_context_column(self) -> None:
        assert "create_context" in Issue.__table__.columns
