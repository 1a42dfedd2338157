"""String enumerations shared by wire models and ORM rows."""

from enum import StrEnum


class VCSType(StrEnum):
    GITHUB = "GITHUB_COM"
    GITLAB = "GITLAB_SELF_HOST"


class TenantMode(StrEnum):
    DISABLED = "DISABLED"
    TENANT = "TENANT"


class SchemaChangeType(StrEnum):
    """How a project's repository describes schema changes."""

    DDL = "DDL"
    SDL = "SDL"


class DatabaseEngine(StrEnum):
    POSTGRES = "POSTGRES"
    MYSQL = "MYSQL"
    TIDB = "TIDB"
    SNOWFLAKE = "SNOWFLAKE"
    CLICKHOUSE = "CLICKHOUSE"
    SQLITE = "SQLITE"


class MigrationSource(StrEnum):
    UI = "UI"
    VCS = "VCS"


class MigrationType(StrEnum):
    BASELINE = "BASELINE"
    MIGRATE = "MIGRATE"
    DATA = "DATA"


class FileItemType(StrEnum):
    """Whether a push added or modified a file."""

    ADDED = "added"
    MODIFIED = "modified"


class IssueType(StrEnum):
    DATABASE_SCHEMA_UPDATE = "bb.issue.database.schema.update"
    DATABASE_DATA_UPDATE = "bb.issue.database.data.update"


class TaskType(StrEnum):
    DATABASE_SCHEMA_UPDATE = "bb.task.database.schema.update"
    DATABASE_DATA_UPDATE = "bb.task.database.data.update"


class TaskStatus(StrEnum):
    PENDING = "PENDING"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class ActivityType(StrEnum):
    PROJECT_REPOSITORY_PUSH = "bb.project.repository.push"


class ActivityLevel(StrEnum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
