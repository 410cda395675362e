"""CockroachDB driver.

Speaks the Postgres wire protocol and catalog, so introspection and most
rendering come from ``PostgresDriver``.  Differences handled here:

- Schema changes are not transactional: statements are applied one by one
  and a mid-plan failure is reported as a partial application.
- ``int``/``integer`` is 8 bytes; auto-increment uses ``unique_rowid()``.
- Indexes are dropped as ``table@index``; primary keys are replaced in
  place with ``alter primary key``.
- The hidden ``rowid`` column of tables without a primary key is ignored.
"""

from typing import ClassVar

from db_reconciler.drivers.postgres import PostgresDriver
from db_reconciler.schema.models import (
    ColumnChange,
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableSchema,
)


class CockroachDBDriver(PostgresDriver):
    """Driver for CockroachDB."""

    name: ClassVar[str] = "cockroachdb"
    transactional_ddl: ClassVar[bool] = False
    hidden_columns: ClassVar[frozenset[str]] = frozenset({"rowid"})

    def normalize_type(self, data_type: str) -> tuple[str, bool]:
        canonical, auto_increment = super().normalize_type(data_type)
        if canonical == "integer":
            canonical = "bigint"
        return canonical, auto_increment

    def normalize_index_type(self, index_type: str | None) -> str | None:
        return None

    def canonicalize_live(self, actual: TableSchema) -> None:
        super().canonicalize_live(actual)
        for column in actual.columns.values():
            column.data_type, _ = self.normalize_type(column.data_type)
        for index in actual.indexes.values():
            index.index_type = None

    def render_column(self, column: ColumnSchema) -> str:
        parts = [self.quote(column.name), column.data_type]
        if not column.is_nullable:
            parts.append("not null")
        if column.auto_increment:
            parts.append("default unique_rowid()")
        elif column.default is not None:
            parts.append(f"default {column.default}")
        return " ".join(parts)

    def alter_column(self, table: str, change: ColumnChange) -> list[str]:
        if change.old.auto_increment == change.new.auto_increment:
            return super().alter_column(table, change)

        name = self.quote(change.name)
        rest = ColumnChange(
            old=change.old,
            new=change.new.model_copy(update={"auto_increment": change.old.auto_increment}),
        )
        statements = super().alter_column(table, rest)
        if change.new.auto_increment:
            action = f"alter column {name} set default unique_rowid()"
        else:
            action = f"alter column {name} drop default"
        statements.append(f"alter table {self.quote(table)} {action}")
        return statements

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        return [f"drop index {self.quote(table)}@{self.quote(index.name)}"]

    def add_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        if constraint.constraint_type != "PRIMARY KEY":
            return super().add_constraint(table, constraint)
        columns = ", ".join(self.quote(c) for c in constraint.columns)
        return [f"alter table {self.quote(table)} alter primary key using columns ({columns})"]

    def drop_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        # The replacement key is installed by ``alter primary key``
        if constraint.constraint_type == "PRIMARY KEY":
            return []
        return super().drop_constraint(table, constraint)
