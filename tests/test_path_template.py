"""Tests for path template rendering, matching and migration info parsing."""

from datetime import UTC, datetime

import pytest

from schemasync.errors import MigrationInfoError, TemplateError
from schemasync.schemas.enums import MigrationType
from schemasync.services import path_template
from schemasync.services.path_template import (
    MIGRATION_PLACEHOLDERS,
    SCHEMA_PLACEHOLDERS,
    default_migration_version,
    join,
    match,
    parse_migration_info,
    parse_schema_file_info,
    render,
)
from factories import MIGRATION_TEMPLATE, SCHEMA_TEMPLATE


def test_schema_template_match() -> None:
    info = match("bytebase", SCHEMA_TEMPLATE, "bytebase/prod/db1/schema.sql", SCHEMA_PLACEHOLDERS)

    assert info == {"ENV_NAME": "prod", "DB_NAME": "db1"}


def test_schema_template_non_match_returns_none() -> None:
    assert match("bytebase", SCHEMA_TEMPLATE, "bytebase/prod/db1/other.sql", SCHEMA_PLACEHOLDERS) is None


def test_placeholder_does_not_cross_directories() -> None:
    path = "bytebase/prod/nested/db1/schema.sql"
    assert match("bytebase", SCHEMA_TEMPLATE, path, SCHEMA_PLACEHOLDERS) is None


def test_match_outside_base_directory() -> None:
    assert match("bytebase", SCHEMA_TEMPLATE, "other/prod/db1/schema.sql", SCHEMA_PLACEHOLDERS) is None


def test_literal_dot_is_not_a_wildcard() -> None:
    assert match("", SCHEMA_TEMPLATE, "prod/db1/schemaXsql", SCHEMA_PLACEHOLDERS) is None


def test_empty_template_never_matches() -> None:
    assert match("bytebase", "", "bytebase/prod/db1/schema.sql", SCHEMA_PLACEHOLDERS) is None


def test_base_directory_is_matched_literally() -> None:
    assert match("db.v1", "{{DB_NAME}}.sql", "dbXv1/orders.sql", SCHEMA_PLACEHOLDERS) is None
    assert match("db.v1", "{{DB_NAME}}.sql", "db.v1/orders.sql", SCHEMA_PLACEHOLDERS) == {
        "DB_NAME": "orders"
    }


def test_invalid_template_raises_template_error() -> None:
    with pytest.raises(TemplateError):
        match("", "{{DB_NAME}}(.sql", "orders(.sql", SCHEMA_PLACEHOLDERS)


def test_parse_schema_file_info_without_template() -> None:
    assert parse_schema_file_info("bytebase", "", "bytebase/prod/db1/schema.sql") is None


def test_render_fills_known_placeholders() -> None:
    rendered = render(MIGRATION_TEMPLATE, {"ENV_NAME": "dev", "DB_NAME": "orders", "VERSION": "v1"})

    assert rendered == "dev/orders/v1__{{DESCRIPTION}}.sql"


def test_join_normalises_with_forward_slashes() -> None:
    assert join("migrations/", "dev/./orders.sql") == "migrations/dev/orders.sql"
    assert join("", "dev/orders.sql") == "dev/orders.sql"


def test_render_then_match_recovers_values() -> None:
    values = {"ENV_NAME": "prod", "DB_NAME": "orders", "VERSION": "0002", "TYPE": "migrate",
              "DESCRIPTION": "add_index"}
    template = "{{ENV_NAME}}/{{DB_NAME}}/{{VERSION}}__{{TYPE}}__{{DESCRIPTION}}.sql"

    path = join("migrations", render(template, values))

    assert match("migrations", template, path, MIGRATION_PLACEHOLDERS) == values


# ---------------------------------------------------------------------------
# Migration info
# ---------------------------------------------------------------------------


def test_parse_migration_info_full() -> None:
    info = parse_migration_info("migrations/dev/orders/v1__init.sql", "migrations", MIGRATION_TEMPLATE)

    assert info.version == "v1"
    assert info.database == "orders"
    assert info.namespace == "orders"
    assert info.environment == "dev"
    assert info.type == MigrationType.MIGRATE
    assert info.description == "Init"


def test_parse_migration_info_description_underscores() -> None:
    info = parse_migration_info(
        "migrations/dev/orders/v2__add_customer_index.sql", "migrations", MIGRATION_TEMPLATE
    )

    assert info.description == "Add customer index"


@pytest.mark.parametrize(
    ("raw_type", "expected"),
    [
        ("data", MigrationType.DATA),
        ("dml", None),
        ("migrate", MigrationType.MIGRATE),
        ("baseline", MigrationType.BASELINE),
        ("DATA", MigrationType.DATA),
    ],
)
def test_parse_migration_info_type(raw_type: str, expected: MigrationType | None) -> None:
    template = "{{DB_NAME}}/{{VERSION}}__{{TYPE}}.sql"
    path = f"orders/v1__{raw_type}.sql"
    if expected is None:
        with pytest.raises(MigrationInfoError):
            parse_migration_info(path, "", template)
        return
    assert parse_migration_info(path, "", template).type == expected


@pytest.mark.parametrize(
    ("raw_type", "description"),
    [
        ("migrate", "Create orders schema migration"),
        ("data", "Create orders data change"),
        ("baseline", "Create orders baseline"),
    ],
)
def test_parse_migration_info_default_description(raw_type: str, description: str) -> None:
    info = parse_migration_info(f"orders/v1__{raw_type}.sql", "", "{{DB_NAME}}/{{VERSION}}__{{TYPE}}.sql")

    assert info.description == description


def test_parse_migration_info_requires_version() -> None:
    with pytest.raises(MigrationInfoError):
        parse_migration_info("dev/orders/init.sql", "", "{{ENV_NAME}}/{{DB_NAME}}/{{DESCRIPTION}}.sql")


def test_parse_migration_info_requires_database() -> None:
    with pytest.raises(MigrationInfoError):
        parse_migration_info("dev/v1__init.sql", "", "{{ENV_NAME}}/{{VERSION}}__{{DESCRIPTION}}.sql")


def test_parse_migration_info_non_match() -> None:
    with pytest.raises(MigrationInfoError):
        parse_migration_info("migrations/README.md", "migrations", MIGRATION_TEMPLATE)


def test_parse_migration_info_without_template() -> None:
    with pytest.raises(MigrationInfoError):
        parse_migration_info("migrations/dev/orders/v1__init.sql", "migrations", "")


def test_default_migration_version_format() -> None:
    now = datetime(2026, 10, 17, 8, 5, 9, tzinfo=UTC)

    assert default_migration_version(now) == "20261017080509"
    assert len(path_template.default_migration_version()) == 14
