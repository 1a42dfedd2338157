"""Initial schema: principals, projects, databases, repositories, issues, tasks, activities.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the metadata tables read and written by the push webhooks."""
    op.create_table(
        "principals",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
    )

    op.create_table(
        "environments",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("tenant_mode", sa.String(32), nullable=False, server_default="DISABLED"),
        sa.Column("schema_change_type", sa.String(32), nullable=False, server_default="DDL"),
    )

    op.create_table(
        "instances",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "environment_id",
            sa.Integer,
            sa.ForeignKey("environments.id"),
            nullable=False,
        ),
        sa.Column("engine", sa.String(32), nullable=False),
        sa.Column("host", sa.String(255), nullable=False),
        sa.Column("port", sa.String(16), nullable=False, server_default=""),
        sa.Column("username", sa.String(255), nullable=False, server_default=""),
        sa.Column("password", sa.String(255), nullable=False, server_default=""),
    )

    op.create_table(
        "databases",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("instance_id", sa.Integer, sa.ForeignKey("instances.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.UniqueConstraint("instance_id", "name", name="uq_databases_instance_name"),
    )
    op.create_index("ix_databases_project_name", "databases", ["project_id", "name"])

    op.create_table(
        "vcs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("instance_url", sa.String(1024), nullable=False),
        sa.Column("api_url", sa.String(1024), nullable=False, server_default=""),
    )

    # --- repository bindings ---
    op.create_table(
        "repositories",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("vcs_id", sa.Integer, sa.ForeignKey("vcs.id"), nullable=True),
        sa.Column("webhook_endpoint_id", sa.String(255), nullable=False),
        sa.Column("web_url", sa.String(1024), nullable=False, server_default=""),
        sa.Column("branch_filter", sa.String(255), nullable=False),
        sa.Column("base_directory", sa.String(1024), nullable=False, server_default=""),
        sa.Column("file_path_template", sa.String(1024), nullable=False, server_default=""),
        sa.Column("schema_path_template", sa.String(1024), nullable=False, server_default=""),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("webhook_secret_token", sa.String(255), nullable=False, server_default=""),
        sa.Column("access_token", sa.Text, nullable=False, server_default=""),
        sa.Column("refresh_token", sa.Text, nullable=False, server_default=""),
    )
    op.create_index(
        "ix_repositories_webhook_endpoint_id", "repositories", ["webhook_endpoint_id"]
    )

    # --- issues, tasks and activities ---
    op.create_table(
        "issues",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("creator_id", sa.Integer, sa.ForeignKey("principals.id"), nullable=False),
        sa.Column("assignee_id", sa.Integer, sa.ForeignKey("principals.id"), nullable=False),
        sa.Column("name", sa.String(1024), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("create_context", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "issue_id",
            sa.Integer,
            sa.ForeignKey("issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("database_id", sa.Integer, sa.ForeignKey("databases.id"), nullable=True),
        sa.Column("name", sa.String(1024), nullable=False, server_default=""),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("statement", sa.Text, nullable=False, server_default=""),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("updater_id", sa.Integer, sa.ForeignKey("principals.id"), nullable=True),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tasks_database_status", "tasks", ["database_id", "status"])

    op.create_table(
        "activities",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("creator_id", sa.Integer, sa.ForeignKey("principals.id"), nullable=False),
        sa.Column("container_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("level", sa.String(16), nullable=False),
        sa.Column("comment", sa.Text, nullable=False, server_default=""),
        sa.Column("payload", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("activities")
    op.drop_table("tasks")
    op.drop_table("issues")
    op.drop_table("repositories")
    op.drop_table("vcs")
    op.drop_table("databases")
    op.drop_table("instances")
    op.drop_table("projects")
    op.drop_table("environments")
    op.drop_table("principals")
