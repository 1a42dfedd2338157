"""Read models exchanged with the store.

These are detached snapshots of ORM rows, so reconciliation never triggers
lazy loads and tests can build them without a database.
"""

from pydantic import BaseModel, ConfigDict

from schemasync.schemas.enums import (
    ActivityLevel,
    ActivityType,
    DatabaseEngine,
    IssueType,
    SchemaChangeType,
    TaskStatus,
    TaskType,
    TenantMode,
    VCSType,
)


class _Snapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ProjectInfo(_Snapshot):
    id: int
    name: str = ""
    tenant_mode: TenantMode = TenantMode.DISABLED
    schema_change_type: SchemaChangeType = SchemaChangeType.DDL


class VCSInfo(_Snapshot):
    id: int
    type: VCSType
    instance_url: str
    api_url: str = ""


class RepositoryBinding(_Snapshot):
    """A VCS repository registered under a webhook endpoint."""

    id: int
    project: ProjectInfo
    vcs: VCSInfo | None = None
    webhook_endpoint_id: str
    web_url: str = ""
    branch_filter: str
    base_directory: str = ""
    file_path_template: str = ""
    schema_path_template: str = ""
    external_id: str
    webhook_secret_token: str = ""
    access_token: str = ""
    refresh_token: str = ""

    @property
    def project_id(self) -> int:
        return self.project.id


class InstanceInfo(_Snapshot):
    id: int
    engine: DatabaseEngine
    host: str
    port: str = ""
    username: str = ""
    password: str = ""
    environment_id: int
    environment_name: str


class DatabaseTarget(_Snapshot):
    id: int
    project_id: int
    name: str
    instance: InstanceInfo


class TaskRef(_Snapshot):
    """A task with the concurrency token needed to patch it."""

    id: int
    issue_id: int
    database_id: int | None = None
    status: TaskStatus
    type: TaskType
    statement: str = ""
    schema_version: str = ""
    version: int = 1


class PrincipalInfo(_Snapshot):
    id: int
    email: str
    name: str = ""


class IssueCreate(BaseModel):
    project_id: int
    name: str
    type: IssueType
    description: str = ""
    assignee_id: int
    create_context: str


class IssueRef(_Snapshot):
    id: int
    name: str


class ActivityCreate(BaseModel):
    creator_id: int
    container_id: int
    type: ActivityType = ActivityType.PROJECT_REPOSITORY_PUSH
    level: ActivityLevel
    comment: str
    payload: str = ""
