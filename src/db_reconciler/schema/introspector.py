"""PostgreSQL-family table introspection via pg_catalog.

This module queries a live Postgres, CockroachDB or TimescaleDB database
and returns one table in canonical form:
- Columns, data types, nullability, defaults, auto-increment
- Constraints (primary key, foreign key)
- Indexes (name, columns, uniqueness, access method), excluding indexes
  that back a constraint

Type and default canonicalization lives here too, so the drivers can apply
exactly the same rules to the desired side.

Uses psycopg (v3) for PostgreSQL connections.
"""

import re

import psycopg
from psycopg import AsyncConnection

from db_reconciler.errors import ConnectivityError
from db_reconciler.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableSchema,
)

# ============================================================================
# Canonicalization
# ============================================================================

POSTGRES_TYPE_ALIASES = {
    "int": "integer",
    "int4": "integer",
    "int8": "bigint",
    "int2": "smallint",
    "bool": "boolean",
    "float8": "double precision",
    "float4": "real",
    "float": "double precision",
    "decimal": "numeric",
    "character varying": "varchar",
    "character": "char",
    "bpchar": "char",
    "timestamp without time zone": "timestamp",
    "timestamp with time zone": "timestamptz",
    "time without time zone": "time",
    "time with time zone": "timetz",
}

SERIAL_TYPES = {
    "smallserial": "smallint",
    "serial2": "smallint",
    "serial": "integer",
    "serial4": "integer",
    "bigserial": "bigint",
    "serial8": "bigint",
}

ON_DELETE_RULES = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

_TYPE_WITH_ARGS = re.compile(r"^(?P<base>[a-z0-9_ ]+?)\s*(?P<args>\(.*\))?(?P<array>(\[\])*)$")
_CAST_SUFFIX = re.compile(r"::[a-z_][a-z0-9_ ]*(\([0-9, ]*\))?(\[\])*$", re.IGNORECASE)
_QUOTED_NUMBER = re.compile(r"^'-?[0-9]+(\.[0-9]+)?'$")


def normalize_postgres_type(data_type: str) -> tuple[str, bool]:
    """Canonical spelling of a Postgres type.

    Returns:
        Tuple of (canonical type, implied auto-increment).  Serial types
        become their integer type with auto-increment set.

    Examples:
        >>> normalize_postgres_type("character varying(255)")
        ('varchar(255)', False)
        >>> normalize_postgres_type("SERIAL")
        ('integer', True)
    """
    value = " ".join(data_type.lower().split())
    if value in SERIAL_TYPES:
        return SERIAL_TYPES[value], True

    match = _TYPE_WITH_ARGS.match(value)
    if not match:
        return value, False

    base = match.group("base").strip()
    args = (match.group("args") or "").replace(" ", "")
    array = match.group("array") or ""

    base = POSTGRES_TYPE_ALIASES.get(base, base)
    return f"{base}{args}{array}", False


def is_auto_increment_default(default: str | None) -> bool:
    """True for sequence-backed defaults (serial or CockroachDB rowid)."""
    if default is None:
        return False
    value = default.strip().lower()
    return value.startswith("nextval(") or value == "unique_rowid()"


def normalize_postgres_default(default: str | None) -> str | None:
    """Canonical spelling of a column default expression.

    Strips trailing type casts the catalog adds (``'a'::character varying``)
    and lowercases everything outside string literals.

    Examples:
        >>> normalize_postgres_default("'active'::character varying")
        "'active'"
        >>> normalize_postgres_default("CURRENT_TIMESTAMP")
        'current_timestamp'
    """
    if default is None:
        return None
    value = default.strip()
    if not value:
        return None

    previous = None
    while previous != value:
        previous = value
        value = _CAST_SUFFIX.sub("", value).strip()
        if value.startswith("(") and value.endswith(")") and value.count("(") == 1:
            value = value[1:-1].strip()

    if _QUOTED_NUMBER.match(value):
        return value[1:-1]
    if value.startswith("'"):
        return value
    return value.lower()


def postgres_psycopg_url(database_url: str) -> str:
    """Convert any supported URL spelling to a libpq-compatible URL."""
    _, sep, rest = database_url.partition("://")
    if not sep:
        return database_url
    return f"postgresql://{rest}"


# ============================================================================
# Introspector
# ============================================================================


class SchemaIntrospector:
    """Introspects one PostgreSQL-family table at a time.

    Uses pg_catalog for columns, constraints and indexes.  Works with any
    PostgreSQL-compatible database (Postgres, TimescaleDB, CockroachDB).

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            table = await introspector.introspect_table("users")
            if table is None:
                print("absent")
    """

    def __init__(
        self,
        database_url: str,
        schema_name: str = "public",
        hidden_columns: set[str] | None = None,
    ):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL (any driver suffix)
            schema_name: Schema holding the tables (default: public)
            hidden_columns: Column names never reported (e.g. CockroachDB rowid)
        """
        self._database_url = postgres_psycopg_url(database_url)
        self._schema_name = schema_name
        self._hidden_columns = hidden_columns or set()
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Context manager entry - opens connection."""
        url = self._database_url
        if "connect_timeout" not in url:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}connect_timeout=10"

        try:
            self._conn = await psycopg.AsyncConnection.connect(url, autocommit=True)
        except psycopg.OperationalError as e:
            raise ConnectivityError(f"cannot reach database: {e}", phase="introspect") from e
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def _fetch(self, query: str, params: tuple) -> list[tuple]:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")
        async with self._conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    async def table_exists(self, table_name: str) -> bool:
        query = """
            SELECT 1
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s
              AND c.relname = %s
              AND c.relkind IN ('r', 'p')
        """
        return bool(await self._fetch(query, (self._schema_name, table_name)))

    async def introspect_table(self, table_name: str) -> TableSchema | None:
        """Read *table_name* in canonical form.

        Returns:
            TableSchema, or None if the table does not exist.
        """
        if not await self.table_exists(table_name):
            return None

        table = TableSchema(name=table_name)
        table.columns = await self._get_columns(table_name)
        table.constraints = await self._get_constraints(table_name)
        table.indexes = await self._get_indexes(table_name)
        return table

    async def _get_columns(self, table_name: str) -> dict[str, ColumnSchema]:
        """Get columns for a table."""
        query = """
            SELECT
                a.attname AS column_name,
                format_type(a.atttypid, a.atttypmod) AS data_type,
                a.attnotnull AS not_null,
                pg_get_expr(d.adbin, d.adrelid) AS column_default,
                a.attidentity AS identity
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE n.nspname = %s
              AND c.relname = %s
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        columns = {}
        for row in await self._fetch(query, (self._schema_name, table_name)):
            col_name, data_type, not_null, default, identity = row
            if col_name in self._hidden_columns:
                continue
            canonical_type, _ = normalize_postgres_type(data_type)
            auto_increment = bool(identity) or is_auto_increment_default(default)
            columns[col_name] = ColumnSchema(
                name=col_name,
                data_type=canonical_type,
                is_nullable=not not_null,
                default=None if auto_increment else normalize_postgres_default(default),
                auto_increment=auto_increment,
            )
        return columns

    async def _get_constraints(self, table_name: str) -> dict[str, ConstraintSchema]:
        """Get primary and foreign key constraints for a table."""
        query = """
            SELECT
                con.conname,
                con.contype,
                ARRAY(
                    SELECT a.attname
                    FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
                    JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
                    ORDER BY k.ord
                ) AS columns,
                ref.relname AS references_table,
                ARRAY(
                    SELECT a.attname
                    FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
                    JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.attnum
                    ORDER BY k.ord
                ) AS references_columns,
                con.confdeltype
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_class ref ON ref.oid = con.confrelid
            WHERE n.nspname = %s
              AND c.relname = %s
              AND con.contype IN ('p', 'f')
            ORDER BY con.conname
        """
        constraints = {}
        for row in await self._fetch(query, (self._schema_name, table_name)):
            name, ctype, columns, ref_table, ref_columns, delete_rule = row
            if ctype == "p":
                constraints[name] = ConstraintSchema(
                    name=name,
                    constraint_type="PRIMARY KEY",
                    columns=list(columns),
                )
            else:
                constraints[name] = ConstraintSchema(
                    name=name,
                    constraint_type="FOREIGN KEY",
                    columns=list(columns),
                    references_table=ref_table,
                    references_columns=list(ref_columns or []),
                    on_delete=ON_DELETE_RULES.get(delete_rule or "a", "NO ACTION"),
                )
        return constraints

    async def _get_indexes(self, table_name: str) -> dict[str, IndexSchema]:
        """Get indexes for a table (excluding primary key and constraint-backed)."""
        query = """
            SELECT
                i.relname AS index_name,
                array_agg(a.attname ORDER BY x.ordinality) AS columns,
                ix.indisunique AS is_unique,
                am.amname AS index_type
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_am am ON am.oid = i.relam
            JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
            WHERE n.nspname = %s
              AND t.relname = %s
              AND NOT ix.indisprimary
              AND NOT EXISTS (
                  SELECT 1 FROM pg_constraint con WHERE con.conindid = ix.indexrelid
              )
            GROUP BY i.relname, ix.indisunique, am.amname
            ORDER BY i.relname
        """
        indexes = {}
        for row in await self._fetch(query, (self._schema_name, table_name)):
            name, columns, is_unique, idx_type = row
            indexes[name] = IndexSchema(
                name=name,
                columns=list(columns),
                is_unique=is_unique,
                index_type=idx_type.lower() if idx_type else None,
            )
        return indexes

    async def is_hypertable(self, table_name: str) -> bool:
        """True if TimescaleDB manages *table_name* as a hypertable."""
        query = """
            SELECT 1
            FROM timescaledb_information.hypertables
            WHERE hypertable_schema = %s
              AND hypertable_name = %s
        """
        return bool(await self._fetch(query, (self._schema_name, table_name)))
