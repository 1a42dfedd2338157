"""Schema diff engine for schema-declarative (SDL) repositories.

Computes the DDL needed to move a live database to a proposed schema
snapshot:

1. dump the current schema over a scoped admin connection,
2. parse the dump and the snapshot with the engine's grammar (``sqlglot``),
3. diff the two structural models and render applicable statements.

Only PostgreSQL and MySQL are supported. Parse failures propagate; producing
a migration from a malformed comparison would be unsafe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import sqlglot
import structlog
from sqlalchemy import MetaData
from sqlalchemy.engine import URL, Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateIndex, CreateTable
from sqlglot import exp
from sqlglot.errors import SqlglotError

from schemasync.db.engine import admin_engine
from schemasync.errors import (
    SchemaDiffError,
    SchemaDumpError,
    SchemaParseError,
    SchemaSyncError,
    UnsupportedEngineError,
)
from schemasync.schemas.bindings import DatabaseTarget
from schemasync.schemas.enums import DatabaseEngine

logger = structlog.get_logger()

POSTGRES = "postgres"
MYSQL = "mysql"

_DIALECTS = {
    DatabaseEngine.POSTGRES: POSTGRES,
    DatabaseEngine.MYSQL: MYSQL,
}

_DRIVERS = {
    DatabaseEngine.POSTGRES: "postgresql+asyncpg",
    DatabaseEngine.MYSQL: "mysql+aiomysql",
}


def dialect_for(engine: DatabaseEngine) -> str:
    """Return the sqlglot dialect for a database engine.

    Raises:
        UnsupportedEngineError: For engines other than PostgreSQL and MySQL.
    """
    try:
        return _DIALECTS[engine]
    except KeyError:
        raise UnsupportedEngineError(str(engine)) from None


# ---------------------------------------------------------------------------
# Dumping
# ---------------------------------------------------------------------------


class SchemaDumper(Protocol):
    """Protocol for dumping the schema-only definition of a database."""

    async def dump(self, database: DatabaseTarget) -> str:
        """Return the database's current schema as DDL text."""
        ...


def admin_url(database: DatabaseTarget) -> URL:
    """Build the administrative connection URL for a database."""
    instance = database.instance
    try:
        drivername = _DRIVERS[instance.engine]
    except KeyError:
        raise UnsupportedEngineError(str(instance.engine)) from None
    return URL.create(
        drivername,
        username=instance.username or None,
        password=instance.password or None,
        host=instance.host,
        port=int(instance.port) if instance.port else None,
        database=database.name,
    )


def _dump_schema(connection: Connection) -> str:
    metadata = MetaData()
    metadata.reflect(bind=connection)
    dialect = connection.dialect
    statements: list[str] = []
    for table in metadata.sorted_tables:
        statements.append(f"{str(CreateTable(table).compile(dialect=dialect)).strip()};")
        for index in sorted(table.indexes, key=lambda index: index.name or ""):
            statements.append(f"{str(CreateIndex(index).compile(dialect=dialect)).strip()};")
    return "\n\n".join(statements)


class SQLAlchemySchemaDumper:
    """Production implementation reflecting the live schema with SQLAlchemy."""

    def __init__(self, connect_timeout: int = 10) -> None:
        self._connect_timeout = connect_timeout

    def _connect_args(self, engine: DatabaseEngine) -> dict:
        if engine == DatabaseEngine.POSTGRES:
            return {"timeout": self._connect_timeout}
        return {"connect_timeout": self._connect_timeout}

    async def dump(self, database: DatabaseTarget) -> str:
        try:
            url = admin_url(database)
            async with admin_engine(
                url, connect_args=self._connect_args(database.instance.engine)
            ) as engine, engine.connect() as connection:
                return await connection.run_sync(_dump_schema)
        except (SQLAlchemyError, OSError, ValueError) as exc:
            raise SchemaDumpError(f"dump schema of database {database.name!r}: {exc}") from exc


class InMemorySchemaDumper:
    """Test double returning canned schema text per database id."""

    def __init__(self, schemas: dict[int, str] | None = None) -> None:
        self.schemas: dict[int, str] = dict(schemas or {})
        self.dumped: list[int] = []

    async def dump(self, database: DatabaseTarget) -> str:
        self.dumped.append(database.id)
        return self.schemas.get(database.id, "")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass
class ColumnModel:
    name: str
    identifier: str
    definition: str
    type_sql: str
    not_null: bool


@dataclass
class TableModel:
    key: str
    reference: str
    create_sql: str
    columns: dict[str, ColumnModel] = field(default_factory=dict)


@dataclass
class IndexModel:
    key: str
    identifier: str
    table_key: str
    table_reference: str
    create_sql: str
    signature: str


@dataclass
class SchemaModel:
    """Tables and indexes declared by a schema text, keyed by lower-cased name."""

    tables: dict[str, TableModel] = field(default_factory=dict)
    indexes: dict[str, IndexModel] = field(default_factory=dict)


def _in_default_schema(table: exp.Table, dialect: str) -> bool:
    """Whether ``table`` lives in the schema an unqualified name resolves to.

    Dumps reflect the default schema without qualifiers. MySQL qualifiers
    name a database, and only the target database is ever dumped.
    """
    if not table.db or dialect == MYSQL:
        return True
    return table.db.lower() == "public"


def _table_key(table: exp.Table, dialect: str) -> str:
    if _in_default_schema(table, dialect):
        return table.name.lower()
    return f"{table.db}.{table.name}".lower()


def _index_signature(create: exp.Create, table: exp.Table | None, dialect: str) -> str:
    if table is None or not table.db or not _in_default_schema(table, dialect):
        return create.sql(dialect=dialect)
    normalised = create.copy()
    normalised_table = normalised.this.args["table"]
    normalised_table.set("db", None)
    normalised_table.set("catalog", None)
    return normalised.sql(dialect=dialect)


def _column_model(
    column: exp.ColumnDef, primary_key: set[str], dialect: str
) -> ColumnModel:
    kind = column.args.get("kind")
    not_null = column.name.lower() in primary_key
    for constraint in column.args.get("constraints") or []:
        constraint_kind = constraint.args.get("kind")
        if isinstance(constraint_kind, exp.PrimaryKeyColumnConstraint):
            not_null = True
        elif isinstance(constraint_kind, exp.NotNullColumnConstraint):
            not_null = not constraint_kind.args.get("allow_null")
    return ColumnModel(
        name=column.name,
        identifier=column.this.sql(dialect=dialect),
        definition=column.sql(dialect=dialect),
        type_sql=kind.sql(dialect=dialect) if kind is not None else "",
        not_null=not_null,
    )


def _table_model(create: exp.Create, dialect: str) -> TableModel:
    schema = create.this
    if isinstance(schema, exp.Schema):
        table = schema.this
        elements = schema.expressions
    else:
        table = schema
        elements = []

    primary_key: set[str] = set()
    for element in elements:
        if isinstance(element, exp.ColumnDef):
            continue
        constraint = element if isinstance(element, exp.PrimaryKey) else element.find(exp.PrimaryKey)
        if constraint is not None:
            primary_key.update(ident.name.lower() for ident in constraint.find_all(exp.Identifier))

    model = TableModel(
        key=_table_key(table, dialect),
        reference=table.sql(dialect=dialect),
        create_sql=create.sql(dialect=dialect),
    )
    for element in elements:
        if isinstance(element, exp.ColumnDef):
            model.columns[element.name.lower()] = _column_model(element, primary_key, dialect)
    return model


def _index_model(create: exp.Create, dialect: str) -> IndexModel | None:
    index = create.this
    if not isinstance(index, exp.Index) or not index.name:
        return None
    table = index.args.get("table")
    return IndexModel(
        key=index.name.lower(),
        identifier=index.this.sql(dialect=dialect),
        table_key=_table_key(table, dialect) if table is not None else "",
        table_reference=table.sql(dialect=dialect) if table is not None else "",
        create_sql=create.sql(dialect=dialect),
        signature=_index_signature(create, table, dialect),
    )


def parse_schema(text: str, dialect: str, *, side: str = "new") -> SchemaModel:
    """Parse DDL text into a ``SchemaModel``.

    Statements other than ``CREATE TABLE`` and ``CREATE INDEX`` (``SET``,
    comments, grants) are ignored.

    Raises:
        SchemaParseError: If the text is not valid for the dialect.
    """
    try:
        statements = sqlglot.parse(text, read=dialect)
    except SqlglotError as exc:
        raise SchemaParseError(side, str(exc)) from exc

    model = SchemaModel()
    for statement in statements:
        if not isinstance(statement, exp.Create):
            continue
        kind = str(statement.args.get("kind") or "").upper()
        if kind == "TABLE":
            table = _table_model(statement, dialect)
            model.tables[table.key] = table
        elif kind == "INDEX":
            index = _index_model(statement, dialect)
            if index is not None:
                model.indexes[index.key] = index
    return model


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------


def _diff_columns(old: TableModel, new: TableModel, dialect: str) -> list[str]:
    statements: list[str] = []
    table = new.reference
    for key, column in new.columns.items():
        current = old.columns.get(key)
        if current is None:
            statements.append(f"ALTER TABLE {table} ADD COLUMN {column.definition};")
            continue
        type_changed = current.type_sql != column.type_sql
        null_changed = current.not_null != column.not_null
        if dialect == MYSQL:
            if type_changed or null_changed:
                statements.append(f"ALTER TABLE {table} MODIFY COLUMN {column.definition};")
            continue
        if type_changed:
            statements.append(
                f"ALTER TABLE {table} ALTER COLUMN {column.identifier} TYPE {column.type_sql};"
            )
        if null_changed:
            action = "SET NOT NULL" if column.not_null else "DROP NOT NULL"
            statements.append(f"ALTER TABLE {table} ALTER COLUMN {column.identifier} {action};")
    for key, column in old.columns.items():
        if key not in new.columns:
            statements.append(f"ALTER TABLE {table} DROP COLUMN {column.identifier};")
    return statements


def _drop_index(index: IndexModel, dialect: str) -> str:
    if dialect == MYSQL:
        return f"DROP INDEX {index.identifier} ON {index.table_reference};"
    return f"DROP INDEX {index.identifier};"


def diff_schemas(old: SchemaModel, new: SchemaModel, dialect: str) -> str:
    """Render the DDL turning ``old`` into ``new``; empty when they are equivalent."""
    statements: list[str] = []

    for key, table in new.tables.items():
        current = old.tables.get(key)
        if current is None:
            statements.append(f"{table.create_sql};")
        else:
            statements.extend(_diff_columns(current, table, dialect))

    for key, index in old.indexes.items():
        replacement = new.indexes.get(key)
        if index.table_key in old.tables and index.table_key not in new.tables:
            continue
        if replacement is None or replacement.signature != index.signature:
            statements.append(_drop_index(index, dialect))

    for key, index in new.indexes.items():
        current = old.indexes.get(key)
        if current is None or current.signature != index.signature:
            statements.append(f"{index.create_sql};")

    for key, table in old.tables.items():
        if key not in new.tables:
            statements.append(f"DROP TABLE {table.reference};")

    return "\n".join(statements)


class SchemaDiffer:
    """Compute the DDL diff between a live database and a proposed schema."""

    def __init__(self, dumper: SchemaDumper) -> None:
        self._dumper = dumper

    async def compute(self, database: DatabaseTarget, new_schema: str) -> str:
        """Return the statements needed to apply ``new_schema`` to ``database``.

        Raises:
            UnsupportedEngineError: For engines without a grammar.
            SchemaDumpError: If the current schema cannot be dumped.
            SchemaParseError: If either schema cannot be parsed.
            SchemaDiffError: If the parsed models cannot be diffed.
        """
        dialect = dialect_for(database.instance.engine)
        try:
            current = await self._dumper.dump(database)
        except SchemaSyncError:
            raise
        except Exception as exc:
            raise SchemaDumpError(f"dump schema of database {database.name!r}: {exc}") from exc
        old_model = parse_schema(current, dialect, side="old")
        new_model = parse_schema(new_schema, dialect, side="new")
        try:
            diff = diff_schemas(old_model, new_model, dialect)
        except (SqlglotError, ValueError) as exc:
            raise SchemaDiffError(f"compute schema diff: {exc}") from exc
        logger.debug("schema_diff_computed", database_id=database.id, statements=diff.count(";"))
        return diff
