"""Provider-neutral push event and the migration models derived from it.

``PushEvent`` is what the reconciler sees for one file of one push; the
GitHub and GitLab payloads are translated into it by the orchestrator so no
code downstream branches on the provider.  Models serialise with camelCase
keys because they are embedded verbatim into issue and activity payloads.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from schemasync.schemas.enums import MigrationSource, MigrationType, VCSType


class _PayloadModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class FileCommit(_PayloadModel):
    """The commit a single file event originates from."""

    id: str
    title: str = ""
    message: str = ""
    created_ts: int = 0
    url: str = ""
    author_name: str = ""
    author_email: str = ""
    added: str = ""


class PushEvent(_PayloadModel):
    """One file of a push, bound to the repository it is reconciled against."""

    vcs_type: VCSType
    base_directory: str = ""
    ref: str
    repository_id: str
    repository_url: str = ""
    repository_full_path: str = ""
    author_name: str = ""
    file_commit: FileCommit


class MigrationInfo(_PayloadModel):
    """Semantic migration metadata recovered from a file path."""

    version: str
    namespace: str
    database: str
    environment: str = ""
    source: MigrationSource = MigrationSource.VCS
    type: MigrationType = MigrationType.MIGRATE
    description: str = ""


class MigrationDetail(_PayloadModel):
    """One statement to apply, targeting a database row or a tenant database name."""

    database_id: int | None = None
    database_name: str | None = None
    statement: str
    schema_version: str = ""


class MigrationContext(_PayloadModel):
    """Opaque create context stored on an issue created from a push."""

    migration_type: MigrationType
    vcs_push_event: PushEvent | None = None
    detail_list: list[MigrationDetail] = Field(default_factory=list)


class RepositoryPushPayload(_PayloadModel):
    """Payload of a repository push activity."""

    vcs_push_event: PushEvent
    issue_id: int | None = None
    issue_name: str = ""
