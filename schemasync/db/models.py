"""SQLAlchemy ORM models for projects, repository bindings and work items."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class Principal(Base):
    """A user or bot that can create issues."""

    __tablename__ = "principals"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    name: Mapped[str] = mapped_column(String(255), default="")


class Environment(Base):
    __tablename__ = "environments"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    tenant_mode: Mapped[str] = mapped_column(String(32), default="DISABLED")
    schema_change_type: Mapped[str] = mapped_column(String(32), default="DDL")


class Instance(Base):
    """A database server living in one environment."""

    __tablename__ = "instances"

    id: Mapped[int] = mapped_column(primary_key=True)
    environment_id: Mapped[int] = mapped_column(ForeignKey("environments.id"))
    engine: Mapped[str] = mapped_column(String(32))
    host: Mapped[str] = mapped_column(String(255))
    port: Mapped[str] = mapped_column(String(16), default="")
    username: Mapped[str] = mapped_column(String(255), default="")
    password: Mapped[str] = mapped_column(String(255), default="")

    environment: Mapped[Environment] = relationship(lazy="joined")


class Database(Base):
    __tablename__ = "databases"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"))
    instance_id: Mapped[int] = mapped_column(ForeignKey("instances.id"))
    name: Mapped[str] = mapped_column(String(255))

    instance: Mapped[Instance] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("instance_id", "name", name="uq_databases_instance_name"),
        Index("ix_databases_project_name", "project_id", "name"),
    )


class VCS(Base):
    """A configured VCS provider (GitHub.com or a self-hosted GitLab)."""

    __tablename__ = "vcs"

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String(32))
    instance_url: Mapped[str] = mapped_column(String(1024))
    api_url: Mapped[str] = mapped_column(String(1024), default="")


class Repository(Base):
    """A VCS repository bound to a project through a webhook endpoint."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"))
    vcs_id: Mapped[int | None] = mapped_column(ForeignKey("vcs.id"), nullable=True)
    webhook_endpoint_id: Mapped[str] = mapped_column(String(255), index=True)
    web_url: Mapped[str] = mapped_column(String(1024), default="")
    branch_filter: Mapped[str] = mapped_column(String(255))
    base_directory: Mapped[str] = mapped_column(String(1024), default="")
    file_path_template: Mapped[str] = mapped_column(String(1024), default="")
    schema_path_template: Mapped[str] = mapped_column(String(1024), default="")
    external_id: Mapped[str] = mapped_column(String(255))
    webhook_secret_token: Mapped[str] = mapped_column(String(255), default="")
    access_token: Mapped[str] = mapped_column(Text, default="")
    refresh_token: Mapped[str] = mapped_column(Text, default="")

    project: Mapped[Project] = relationship(lazy="joined")
    vcs: Mapped[VCS | None] = relationship(lazy="joined")


class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"))
    creator_id: Mapped[int] = mapped_column(ForeignKey("principals.id"))
    assignee_id: Mapped[int] = mapped_column(ForeignKey("principals.id"))
    name: Mapped[str] = mapped_column(String(1024))
    type: Mapped[str] = mapped_column(String(64))
    description: Mapped[str] = mapped_column(Text, default="")
    create_context: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())


class Task(Base):
    """One statement of an issue, targeting one database.

    ``version`` is bumped on every patch and used as a compare-and-set token.
    """

    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(primary_key=True)
    issue_id: Mapped[int] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"))
    database_id: Mapped[int | None] = mapped_column(ForeignKey("databases.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(1024), default="")
    status: Mapped[str] = mapped_column(String(32))
    type: Mapped[str] = mapped_column(String(64))
    statement: Mapped[str] = mapped_column(Text, default="")
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    version: Mapped[int] = mapped_column(default=1)
    updater_id: Mapped[int | None] = mapped_column(ForeignKey("principals.id"), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_tasks_database_status", "database_id", "status"),)


class Activity(Base):
    """An audit record attached to a project."""

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(primary_key=True)
    creator_id: Mapped[int] = mapped_column(ForeignKey("principals.id"))
    container_id: Mapped[int] = mapped_column(ForeignKey("projects.id"))
    type: Mapped[str] = mapped_column(String(64))
    level: Mapped[str] = mapped_column(String(16))
    comment: Mapped[str] = mapped_column(Text, default="")
    payload: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
