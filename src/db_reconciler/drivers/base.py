"""Driver protocol and shared driver machinery.

Defines the ``Driver`` Protocol every dialect implements and two base
classes:

- ``BaseDriver``: lazy target client, unsupported-by-default type planning,
  and the statement application discipline (one transaction for drivers
  with transactional DDL, statement-by-statement with partial-application
  reporting otherwise).
- ``SqlDriver``: the generic table lifecycle for SQL dialects
  (validate -> introspect -> diff -> order), seed reconciliation, and the
  default statement rendering that dialects override piecemeal.

Planning never writes to the target: the only statements sent by
``plan_*`` methods are catalog reads and seed-row lookups.

Usage:
    from db_reconciler.drivers.base import Driver

    async def converge(driver: Driver, name: str, schema) -> None:
        statements = await driver.plan_table(name, schema)
        await driver.deploy_statements(statements)
"""

import asyncio
import logging
from typing import Any, ClassVar, Protocol

from pydantic import BaseModel

from db_reconciler.adapters.base import TargetClient
from db_reconciler.config.models import ConnectionParams
from db_reconciler.errors import (
    ConfigurationError,
    ConnectivityError,
    DeployError,
    InvalidSchemaError,
    PartialApplyError,
    UnsupportedOperationError,
)
from db_reconciler.schema.comparator import diff_tables
from db_reconciler.schema.models import (
    ColumnChange,
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableDiff,
    TableSchema,
)
from db_reconciler.schema.planner import build_plan
from db_reconciler.schema.seed import (
    offline_seed_statements,
    plan_seed_rows,
    seed_match_key,
    sql_literal,
)
from db_reconciler.spec.models import SeedData, SqlTableSchema

logger = logging.getLogger(__name__)


class DeployResult(BaseModel):
    """Outcome of a successful ``deploy_statements`` call."""

    driver: str
    total: int = 0
    applied: int = 0
    transactional: bool = False


class Driver(Protocol):
    """Contract every dialect driver implements."""

    name: ClassVar[str]
    transactional_ddl: ClassVar[bool]

    def create_table_statements(self, table_name: str, schema: Any) -> list[str]:
        """Statements creating the table from nothing.  Pure, no target."""
        ...

    async def plan_table(
        self, table_name: str, schema: Any, seed_data: SeedData | None = None
    ) -> list[str]:
        """Introspect the target and return ordered convergence statements."""
        ...

    async def plan_seed_data(
        self, table_name: str, schema: Any, seed_data: SeedData
    ) -> list[str]:
        """Return INSERT/UPDATE statements for missing or stale seed rows."""
        ...

    async def plan_type(self, type_name: str, schema: Any) -> list[str]:
        """Return statements converging a user-defined type."""
        ...

    async def deploy_statements(self, statements: list[str]) -> DeployResult:
        """Apply statements in order; stop at the first failure."""
        ...

    async def close(self) -> None:
        ...


# ============================================================================
# BaseDriver
# ============================================================================


class BaseDriver:
    """Shared state and application discipline for all drivers.

    Args:
        connection: Target connection parameters.  ``None`` is allowed for
            offline use (fixture generation); any operation that needs the
            target then raises ``ConfigurationError``.
        allow_column_drops: Let plans drop columns that left the table spec.
    """

    name: ClassVar[str] = ""
    transactional_ddl: ClassVar[bool] = False
    supports_seed_data: ClassVar[bool] = True
    supports_types: ClassVar[bool] = False

    def __init__(
        self,
        connection: ConnectionParams | None = None,
        allow_column_drops: bool = False,
    ) -> None:
        self.connection = connection
        self.allow_column_drops = allow_column_drops
        self._client: TargetClient | None = None

    def _create_client(self) -> TargetClient:
        raise NotImplementedError

    def require_connection(self) -> ConnectionParams:
        if self.connection is None:
            raise ConfigurationError(
                "no connection configured for this driver", driver=self.name
            )
        return self.connection

    @property
    def client(self) -> TargetClient:
        """Target client, created on first use."""
        if self._client is None:
            self.require_connection()
            self._client = self._create_client()
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def plan_type(self, type_name: str, schema: Any) -> list[str]:
        raise UnsupportedOperationError(
            f"planning types is not supported for driver {self.name!r}",
            driver=self.name,
            table=type_name,
            phase="type",
        )

    async def deploy_statements(self, statements: list[str]) -> DeployResult:
        """Apply statements against the target.

        Transactional drivers send the whole list in one transaction; a
        failure leaves the target unchanged and raises ``DeployError``.
        Other drivers send statements one at a time; a failure after ``N``
        successful statements raises ``PartialApplyError`` with ``applied=N``.

        Cancellation propagates between statements; nothing further is
        sent once the task is cancelled.
        """
        total = len(statements)
        if total == 0:
            return DeployResult(driver=self.name, transactional=self.transactional_ddl)

        client = self.client

        if self.transactional_ddl:
            try:
                await client.execute_transaction(statements)
            except ConnectivityError:
                raise
            except Exception as e:
                raise DeployError(
                    f"transaction rolled back, 0 of {total} statements applied: {e}",
                    applied=0,
                    total=total,
                    driver=self.name,
                    phase="deploy",
                ) from e
            logger.debug(f"{self.name}: applied {total} statements in one transaction")
            return DeployResult(
                driver=self.name, total=total, applied=total, transactional=True
            )

        applied = 0
        for statement in statements:
            try:
                await client.execute(statement)
            except asyncio.CancelledError:
                if applied:
                    logger.warning(
                        f"{self.name}: deploy cancelled after {applied} of {total} statements"
                    )
                raise
            except Exception as e:
                if applied == 0:
                    if isinstance(e, ConnectivityError):
                        raise
                    raise DeployError(
                        f"statement 1 of {total} failed, nothing applied: {e}",
                        applied=0,
                        total=total,
                        statement=statement,
                        driver=self.name,
                        phase="deploy",
                    ) from e
                raise PartialApplyError(
                    applied, total, statement, e, driver=self.name, phase="deploy"
                ) from e
            applied += 1

        return DeployResult(driver=self.name, total=total, applied=applied)


# ============================================================================
# SqlDriver
# ============================================================================


def validate_sql_schema(table_name: str, schema: SqlTableSchema) -> None:
    """Reject structurally invalid SQL schemas.

    Raises:
        InvalidSchemaError: No columns, duplicate column names, or a key,
            index or foreign key naming an undeclared column.
    """
    if schema.is_deleted:
        return
    if not schema.columns:
        raise InvalidSchemaError("table has no columns", table=table_name)

    names = [c.name for c in schema.columns]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise InvalidSchemaError(
            f"duplicate columns: {', '.join(duplicates)}", table=table_name
        )

    declared = set(names)
    referenced: list[tuple[str, list[str]]] = [("primary key", schema.primary_key)]
    referenced += [(f"index {i.name or i.columns}", i.columns) for i in schema.indexes]
    referenced += [(f"foreign key {f.name or f.columns}", f.columns) for f in schema.foreign_keys]
    for label, columns in referenced:
        if label != "primary key" and not columns:
            raise InvalidSchemaError(f"{label} has no columns", table=table_name)
        missing = [c for c in columns if c not in declared]
        if missing:
            raise InvalidSchemaError(
                f"{label} references undeclared columns: {', '.join(missing)}",
                table=table_name,
            )


def truncate_identifier(name: str, limit: int) -> str:
    return name[:limit]


class SqlDriver(BaseDriver):
    """Generic table lifecycle for SQL dialects.

    Subclasses provide introspection (``introspect``), canonicalization
    (``normalize_type``, ``normalize_default``) and override the renderers
    whose syntax differs from the defaults below.  The driver is its own
    ``StatementRenderer`` and ``SeedRenderer``.
    """

    identifier_limit: ClassVar[int] = 63
    primary_key_name_template: ClassVar[str] = "{table}_pkey"
    backslash_escapes: ClassVar[bool] = False

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def introspect(self, table_name: str) -> TableSchema | None:
        """Read the live table in canonical form, ``None`` if absent."""
        raise NotImplementedError

    def normalize_type(self, data_type: str) -> tuple[str, bool]:
        """Canonical type and whether the type implies auto-increment."""
        return " ".join(data_type.lower().split()), False

    def normalize_default(self, default: str | None) -> str | None:
        if default is None:
            return None
        value = default.strip()
        if value.startswith("'"):
            return value
        return value.lower()

    def normalize_index_type(self, index_type: str | None) -> str | None:
        return index_type.lower() if index_type else None

    def normalize_on_delete(self, rule: str | None) -> str:
        return " ".join(rule.upper().split()) if rule else "NO ACTION"

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def literal(self, value: Any) -> str:
        return sql_literal(value, backslash_escapes=self.backslash_escapes)

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def primary_key_name(self, table_name: str) -> str:
        return truncate_identifier(
            self.primary_key_name_template.format(table=table_name), self.identifier_limit
        )

    def index_name(self, table_name: str, columns: list[str]) -> str:
        return truncate_identifier(
            f"idx_{table_name}_{'_'.join(columns)}", self.identifier_limit
        )

    def foreign_key_name(self, table_name: str, columns: list[str]) -> str:
        return truncate_identifier(
            f"{table_name}_{'_'.join(columns)}_fkey", self.identifier_limit
        )

    # ------------------------------------------------------------------
    # Canonical desired state
    # ------------------------------------------------------------------

    def desired_table(self, table_name: str, schema: SqlTableSchema) -> TableSchema:
        """Canonical form of the desired schema, comparable with ``introspect``."""
        table = TableSchema(name=table_name)

        for col in schema.columns:
            data_type, implied_auto = self.normalize_type(col.type)
            auto_increment = implied_auto or col.auto_increment
            table.columns[col.name] = ColumnSchema(
                name=col.name,
                data_type=data_type,
                is_nullable=not (col.not_null or col.name in schema.primary_key),
                default=None if auto_increment else self.normalize_default(col.default),
                auto_increment=auto_increment,
            )

        if schema.primary_key:
            pk_name = self.primary_key_name(table_name)
            table.constraints[pk_name] = ConstraintSchema(
                name=pk_name,
                constraint_type="PRIMARY KEY",
                columns=list(schema.primary_key),
            )

        for fk in schema.foreign_keys:
            fk_name = fk.name or self.foreign_key_name(table_name, fk.columns)
            table.constraints[fk_name] = ConstraintSchema(
                name=fk_name,
                constraint_type="FOREIGN KEY",
                columns=list(fk.columns),
                references_table=fk.references.table,
                references_columns=list(fk.references.columns),
                on_delete=self.normalize_on_delete(fk.on_delete),
            )

        for idx in schema.indexes:
            idx_name = idx.name or self.index_name(table_name, idx.columns)
            table.indexes[idx_name] = IndexSchema(
                name=idx_name,
                columns=list(idx.columns),
                is_unique=idx.is_unique,
                index_type=self.normalize_index_type(idx.type),
            )

        return table

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def create_table_statements(self, table_name: str, schema: SqlTableSchema) -> list[str]:
        """CREATE TABLE plus one CREATE INDEX per declared index."""
        validate_sql_schema(table_name, schema)
        table = self.desired_table(table_name, schema)
        statements = [self.render_create_table(table, schema)]
        for idx in table.indexes.values():
            statements.extend(self.create_index(table_name, idx))
        return statements

    async def plan_table(
        self,
        table_name: str,
        schema: SqlTableSchema,
        seed_data: SeedData | None = None,
    ) -> list[str]:
        validate_sql_schema(table_name, schema)
        actual = await self.introspect(table_name)

        if schema.is_deleted:
            return self.drop_table(table_name) if actual is not None else []

        if actual is None:
            statements = self.create_table_statements(table_name, schema)
            if seed_data is not None:
                statements += self.fresh_seed_statements(table_name, schema, seed_data)
            return statements

        statements = self.plan_alter(table_name, schema, actual)

        if seed_data is not None and seed_data.rows:
            if statements:
                logger.info(
                    f"{self.name}: seed data for {table_name} deferred until "
                    f"structural changes are applied"
                )
            else:
                statements = await self.plan_seed_data(table_name, schema, seed_data)

        return statements

    def plan_alter(
        self, table_name: str, schema: SqlTableSchema, actual: TableSchema
    ) -> list[str]:
        """Statements converging an existing table (generic diff + ordering)."""
        diff = self.diff(table_name, schema, actual)
        return build_plan(diff, self, self.allow_column_drops)

    def diff(self, table_name: str, schema: SqlTableSchema, actual: TableSchema) -> TableDiff:
        return diff_tables(self.desired_table(table_name, schema), actual)

    async def plan_seed_data(
        self,
        table_name: str,
        schema: SqlTableSchema,
        seed_data: SeedData,
    ) -> list[str]:
        return await plan_seed_rows(
            table_name, seed_data, list(schema.primary_key), self.client, self
        )

    def seed_data_statements(self, table_name: str, seed_data: SeedData) -> list[str]:
        """Insert-or-ignore statements for use without a live target."""
        return offline_seed_statements(table_name, seed_data, self)

    def fresh_seed_statements(
        self, table_name: str, schema: SqlTableSchema, seed_data: SeedData
    ) -> list[str]:
        """Inserts for a table that does not exist yet.

        Rows sharing a match key are merged, later values winning.
        """
        merged: dict[tuple, dict[str, Any]] = {}
        for row in seed_data.rows:
            values = row.as_dict()
            if not values:
                continue
            key = tuple(sorted(seed_match_key(values, list(schema.primary_key)).items()))
            merged[key] = {**merged.get(key, {}), **values}
        return [self.insert(table_name, values) for values in merged.values()]

    # ------------------------------------------------------------------
    # Rendering: tables and columns
    # ------------------------------------------------------------------

    def render_column(self, column: ColumnSchema) -> str:
        parts = [self.quote(column.name), column.data_type]
        if not column.is_nullable:
            parts.append("not null")
        if column.default is not None:
            parts.append(f"default {column.default}")
        return " ".join(parts)

    def render_constraint(self, constraint: ConstraintSchema) -> str:
        columns = ", ".join(self.quote(c) for c in constraint.columns)
        if constraint.constraint_type == "PRIMARY KEY":
            return f"primary key ({columns})"
        refs = ", ".join(self.quote(c) for c in constraint.references_columns or [])
        sql = (
            f"constraint {self.quote(constraint.name)} foreign key ({columns}) "
            f"references {self.quote(constraint.references_table or '')} ({refs})"
        )
        if constraint.on_delete and constraint.on_delete != "NO ACTION":
            sql += f" on delete {constraint.on_delete.lower()}"
        return sql

    def render_create_table(self, table: TableSchema, schema: SqlTableSchema) -> str:
        parts = [self.render_column(c) for c in table.columns.values()]
        parts += [self.render_constraint(c) for c in table.constraints.values()]
        return f"create table {self.quote(table.name)} ({', '.join(parts)})"

    def drop_table(self, table_name: str) -> list[str]:
        return [f"drop table {self.quote(table_name)}"]

    def add_column(self, table: str, column: ColumnSchema) -> list[str]:
        return [f"alter table {self.quote(table)} add column {self.render_column(column)}"]

    def alter_column(self, table: str, change: ColumnChange) -> list[str]:
        raise NotImplementedError

    def drop_column(self, table: str, column: ColumnSchema) -> list[str]:
        return [f"alter table {self.quote(table)} drop column {self.quote(column.name)}"]

    # ------------------------------------------------------------------
    # Rendering: indexes and constraints
    # ------------------------------------------------------------------

    def create_index(self, table: str, index: IndexSchema) -> list[str]:
        unique = "unique " if index.is_unique else ""
        columns = ", ".join(self.quote(c) for c in index.columns)
        return [
            f"create {unique}index {self.quote(index.name)} on {self.quote(table)} ({columns})"
        ]

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        return [f"drop index {self.quote(index.name)}"]

    def add_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        rendered = self.render_constraint(constraint)
        if constraint.constraint_type == "PRIMARY KEY":
            rendered = f"constraint {self.quote(constraint.name)} {rendered}"
        return [f"alter table {self.quote(table)} add {rendered}"]

    def drop_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        return [
            f"alter table {self.quote(table)} drop constraint {self.quote(constraint.name)}"
        ]

    # ------------------------------------------------------------------
    # Rendering: seed rows
    # ------------------------------------------------------------------

    def _insert_parts(self, row: dict[str, Any]) -> tuple[str, str]:
        columns = ", ".join(self.quote(c) for c in row)
        values = ", ".join(self.literal(v) for v in row.values())
        return columns, values

    def insert(self, table: str, row: dict[str, Any]) -> str:
        columns, values = self._insert_parts(row)
        return f"insert into {self.quote(table)} ({columns}) values ({values})"

    def insert_ignore(self, table: str, row: dict[str, Any]) -> str:
        return self.insert(table, row) + " on conflict do nothing"

    def update(self, table: str, values: dict[str, Any], key: dict[str, Any]) -> str:
        assignments = ", ".join(f"{self.quote(c)} = {self.literal(v)}" for c, v in values.items())
        where = " and ".join(f"{self.quote(c)} = {self.literal(v)}" for c, v in key.items())
        return f"update {self.quote(table)} set {assignments} where {where}"

    def match_query(self, table: str, row: dict[str, Any]) -> str:
        conditions = " and ".join(
            f"{self.quote(c)} is null" if v is None else f"{self.quote(c)} = {self.literal(v)}"
            for c, v in row.items()
        )
        return f"select 1 as matched from {self.quote(table)} where {conditions}"
