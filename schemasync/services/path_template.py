"""Repository path templates.

A template is a path relative to a repository's base directory containing
``{{PLACEHOLDER}}`` tokens, e.g. ``{{ENV_NAME}}/{{DB_NAME}}/schema.sql`` for
schema snapshots or ``{{ENV_NAME}}/{{DB_NAME}}/{{VERSION}}__{{DESCRIPTION}}.sql``
for migration scripts. ``render`` fills a template in; ``match`` recovers the
placeholder values from a concrete path.

Paths are always joined with ``/`` regardless of the host OS.
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime

from schemasync.errors import MigrationInfoError, TemplateError
from schemasync.schemas.enums import MigrationSource, MigrationType
from schemasync.schemas.push_event import MigrationInfo

ENV_NAME = "ENV_NAME"
DB_NAME = "DB_NAME"
VERSION = "VERSION"
TYPE = "TYPE"
DESCRIPTION = "DESCRIPTION"

SCHEMA_PLACEHOLDERS = (ENV_NAME, DB_NAME)
MIGRATION_PLACEHOLDERS = (ENV_NAME, DB_NAME, VERSION, TYPE, DESCRIPTION)

# A placeholder never spans a directory boundary.
_PLACEHOLDER_CHARS = r"[a-zA-Z0-9+\-=_#?!$. ]+"

_MIGRATION_TYPES = {
    "migrate": MigrationType.MIGRATE,
    "data": MigrationType.DATA,
    "baseline": MigrationType.BASELINE,
}


def token(name: str) -> str:
    return "{{" + name + "}}"


def render(template: str, values: Mapping[str, str]) -> str:
    """Replace every known ``{{NAME}}`` token of ``template`` with ``values[NAME]``."""
    rendered = template
    for name, value in values.items():
        rendered = rendered.replace(token(name), value)
    return rendered


def join(base_directory: str, relative: str) -> str:
    """Join with ``/`` and normalise, like ``posixpath.join`` plus ``normpath``."""
    joined = posixpath.join(base_directory, relative) if base_directory else relative
    return posixpath.normpath(joined) if joined else joined


def compile_template(
    base_directory: str, template: str, placeholders: Iterable[str]
) -> re.Pattern[str]:
    """Compile ``template`` under ``base_directory`` into an anchored pattern.

    Raises:
        TemplateError: If the resulting pattern is not a valid expression.
    """
    pattern = template.replace(".", r"\.")
    for name in placeholders:
        pattern = pattern.replace(token(name), f"(?P<{name}>{_PLACEHOLDER_CHARS})")
    if base_directory:
        pattern = posixpath.join(re.escape(base_directory.rstrip("/")), pattern)
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise TemplateError(template, str(exc)) from exc


def match(
    base_directory: str,
    template: str,
    path: str,
    placeholders: Iterable[str],
) -> dict[str, str] | None:
    """Return the placeholder values of ``path``, or None if it does not fit ``template``.

    An empty template never matches.

    Raises:
        TemplateError: If the template compiles to an invalid pattern.
    """
    if not template:
        return None
    found = compile_template(base_directory, template, placeholders).fullmatch(path)
    if found is None:
        return None
    return {name: value for name, value in found.groupdict().items() if value is not None}


def parse_schema_file_info(
    base_directory: str, schema_path_template: str, path: str
) -> dict[str, str] | None:
    """Match ``path`` against a schema snapshot template (``ENV_NAME``, ``DB_NAME``)."""
    return match(base_directory, schema_path_template, path, SCHEMA_PLACEHOLDERS)


def parse_migration_info(
    path: str, base_directory: str, file_path_template: str
) -> MigrationInfo:
    """Recover migration metadata from a migration script path.

    ``VERSION`` and ``DB_NAME`` are required. ``TYPE`` defaults to migrate;
    the description defaults to a sentence built from the database name.

    Raises:
        MigrationInfoError: If ``path`` does not look like a migration file.
        TemplateError: If the template is invalid.
    """
    if not file_path_template:
        raise MigrationInfoError("repository has no migration file path template")
    info = match(base_directory, file_path_template, path, MIGRATION_PLACEHOLDERS)
    if info is None:
        msg = f"file path {path!r} does not match file path template {file_path_template!r}"
        raise MigrationInfoError(msg)

    version = info.get(VERSION, "")
    database = info.get(DB_NAME, "")
    if not version:
        raise MigrationInfoError(f"file path {path!r} is missing a version number")
    if not database:
        raise MigrationInfoError(f"file path {path!r} is missing a database name")

    raw_type = info.get(TYPE, "").lower()
    if raw_type and raw_type not in _MIGRATION_TYPES:
        raise MigrationInfoError(f"file path {path!r} has invalid migration type {raw_type!r}")
    migration_type = _MIGRATION_TYPES.get(raw_type, MigrationType.MIGRATE)

    description = info.get(DESCRIPTION, "").replace("_", " ").strip()
    if description:
        description = description[0].upper() + description[1:]
    else:
        description = _default_description(database, migration_type)

    return MigrationInfo(
        version=version,
        namespace=database,
        database=database,
        environment=info.get(ENV_NAME, ""),
        source=MigrationSource.VCS,
        type=migration_type,
        description=description,
    )


def _default_description(database: str, migration_type: MigrationType) -> str:
    if migration_type == MigrationType.BASELINE:
        return f"Create {database} baseline"
    if migration_type == MigrationType.DATA:
        return f"Create {database} data change"
    return f"Create {database} schema migration"


def default_migration_version(now: datetime | None = None) -> str:
    """Version for generated migrations: the UTC time as ``YYYYMMDDHHMMSS``."""
    return (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")
