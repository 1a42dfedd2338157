"""Error taxonomy for push event reconciliation.

Request-level errors (``RequestError``, ``NotFoundError``) abort the whole
webhook call and are mapped to HTTP responses in ``schemasync.main``.  The
remaining errors are scoped to one repository binding, file or database and
are turned into log entries or ignored-file activities by the reconciler.
"""

from __future__ import annotations


class SchemaSyncError(Exception):
    """Base class for every error raised by schemasync."""


class RequestError(SchemaSyncError):
    """Malformed body, invalid ref or unsupported event type (HTTP 400)."""


class NotFoundError(SchemaSyncError):
    """Unknown webhook endpoint or unresolved database."""


class AmbiguityError(SchemaSyncError):
    """More than one candidate where exactly one is required."""


class TenantEnvironmentError(SchemaSyncError):
    """Environment filtering requested for a tenant mode project."""

    def __init__(self, project_id: int) -> None:
        """Initialise with the offending project id."""
        self.project_id = project_id
        super().__init__(
            f"non-empty environment is not allowed for tenant mode project {project_id}"
        )


class ValidationError(SchemaSyncError):
    """Webhook signature could not be computed for a repository binding."""


class TemplateError(SchemaSyncError):
    """A repository path template compiles to an invalid pattern."""

    def __init__(self, template: str, reason: str) -> None:
        """Initialise with the template and the compiler's reason."""
        self.template = template
        super().__init__(f"invalid path template {template!r}: {reason}")


class MigrationInfoError(SchemaSyncError):
    """A file path does not describe a migration file."""


class FeatureNotAvailableError(SchemaSyncError):
    """A gated feature is required but disabled."""

    def __init__(self, feature: str) -> None:
        """Initialise with the feature name."""
        self.feature = feature
        super().__init__(f"feature {feature!r} is not available in the current plan")


class DependencyError(SchemaSyncError):
    """An external collaborator failed while processing one unit of work."""


class ContentFetchError(DependencyError):
    """File content could not be read from the VCS provider."""


class SchemaDumpError(DependencyError):
    """The live schema of a database could not be dumped."""


class SchemaParseError(DependencyError):
    """A schema text could not be parsed with the engine's grammar."""

    def __init__(self, side: str, reason: str) -> None:
        """Initialise with which schema failed (``old`` or ``new``) and why."""
        self.side = side
        super().__init__(f"parse {side} schema: {reason}")


class UnsupportedEngineError(DependencyError):
    """Schema diffing was requested for an engine without a grammar."""

    def __init__(self, engine: str) -> None:
        """Initialise with the unsupported engine name."""
        self.engine = engine
        super().__init__(f"unsupported database engine {engine!r}")


class SchemaDiffError(DependencyError):
    """Two parsed schema models could not be diffed."""


class InternalError(SchemaSyncError):
    """Serialisation or issue creation failure (HTTP 500, scoped to one file)."""
