"""PostgreSQL driver.

Introspects with ``SchemaIntrospector`` (psycopg, pg_catalog), reads seed
rows and applies statements through ``AsyncSqlTarget`` (SQLAlchemy +
asyncpg).  DDL is transactional: a plan is applied in one transaction.

Column changes on an existing table are rendered as one
``alter table ... alter column ...`` statement per column, combining type,
nullability, default and identity changes.
"""

from typing import ClassVar

from db_reconciler.adapters.base import TargetClient
from db_reconciler.adapters.sql import AsyncSqlTarget
from db_reconciler.drivers.base import SqlDriver
from db_reconciler.schema.introspector import (
    SchemaIntrospector,
    normalize_postgres_default,
    normalize_postgres_type,
)
from db_reconciler.schema.models import ColumnChange, ColumnSchema, TableSchema


class PostgresDriver(SqlDriver):
    """Driver for PostgreSQL."""

    name: ClassVar[str] = "postgres"
    transactional_ddl: ClassVar[bool] = True
    hidden_columns: ClassVar[frozenset[str]] = frozenset()

    def _create_client(self) -> TargetClient:
        return AsyncSqlTarget(self.require_connection().uri, self.name)

    def _introspector(self) -> SchemaIntrospector:
        return SchemaIntrospector(
            self.require_connection().uri, hidden_columns=set(self.hidden_columns)
        )

    # ------------------------------------------------------------------
    # Canonicalization
    # ------------------------------------------------------------------

    def normalize_type(self, data_type: str) -> tuple[str, bool]:
        return normalize_postgres_type(data_type)

    def normalize_default(self, default: str | None) -> str | None:
        return normalize_postgres_default(default)

    def normalize_index_type(self, index_type: str | None) -> str | None:
        return (index_type or "btree").lower()

    async def introspect(self, table_name: str) -> TableSchema | None:
        async with self._introspector() as introspector:
            actual = await introspector.introspect_table(table_name)
        if actual is not None:
            self.canonicalize_live(actual)
        return actual

    def canonicalize_live(self, actual: TableSchema) -> None:
        """Key the live primary key under its canonical name.

        The constraint keeps its live ``name`` so a drop still targets it.
        """
        for key, constraint in list(actual.constraints.items()):
            if constraint.constraint_type == "PRIMARY KEY":
                del actual.constraints[key]
                actual.constraints[self.primary_key_name(actual.name)] = constraint

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_column(self, column: ColumnSchema) -> str:
        parts = [self.quote(column.name), column.data_type]
        if column.auto_increment:
            parts.append("generated by default as identity")
        if not column.is_nullable:
            parts.append("not null")
        if column.default is not None:
            parts.append(f"default {column.default}")
        return " ".join(parts)

    def alter_column(self, table: str, change: ColumnChange) -> list[str]:
        name = self.quote(change.name)
        new = change.new
        actions = []

        if change.type_changed:
            actions.append(
                f"alter column {name} type {new.data_type} using {name}::{new.data_type}"
            )
        if change.old.auto_increment != new.auto_increment:
            if new.auto_increment:
                actions.append(f"alter column {name} add generated by default as identity")
            else:
                actions.append(f"alter column {name} drop identity if exists")
                actions.append(f"alter column {name} drop default")
        if change.nullability_changed:
            verb = "set" if not new.is_nullable else "drop"
            actions.append(f"alter column {name} {verb} not null")
        if change.default_changed and not new.auto_increment:
            if new.default is None:
                if change.old.default is not None:
                    actions.append(f"alter column {name} drop default")
            else:
                actions.append(f"alter column {name} set default {new.default}")

        if not actions:
            return []
        return [f"alter table {self.quote(table)} {', '.join(actions)}"]
