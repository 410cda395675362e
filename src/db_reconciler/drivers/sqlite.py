"""SQLite driver.

SQLite can add a nullable column and create or drop an index in place;
every other structural change (column type, nullability or default,
constraints, dropped columns) is applied by rebuilding the table:

1. create ``<table>__rebuild`` with the target structure
2. copy the columns both versions share
3. drop the old table
4. rename the new table into place
5. recreate the declared indexes

The whole plan runs in one transaction, so a failed rebuild leaves the
original table untouched.  Foreign keys and names are read with PRAGMAs;
SQLite does not keep foreign key names, so foreign keys are matched by
their column list.
"""

import re
from collections import defaultdict
from typing import ClassVar

from db_reconciler.adapters.base import TargetClient
from db_reconciler.adapters.sql import AsyncSqlTarget
from db_reconciler.drivers.base import SqlDriver
from db_reconciler.schema.comparator import diff_tables
from db_reconciler.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableDiff,
    TableSchema,
)
from db_reconciler.schema.planner import build_plan, columns_to_drop
from db_reconciler.spec.models import SqliteTableSchema

_AUTOINCREMENT = re.compile(r"\bautoincrement\b", re.IGNORECASE)

REBUILD_SUFFIX = "__rebuild"


class SqliteDriver(SqlDriver):
    """Driver for SQLite database files."""

    name: ClassVar[str] = "sqlite"
    transactional_ddl: ClassVar[bool] = True

    def _create_client(self) -> TargetClient:
        return AsyncSqlTarget(self.require_connection().uri, "sqlite")

    # ------------------------------------------------------------------
    # Canonicalization
    # ------------------------------------------------------------------

    def normalize_index_type(self, index_type: str | None) -> str | None:
        return None

    def desired_table(self, table_name: str, schema: SqliteTableSchema) -> TableSchema:
        table = super().desired_table(table_name, schema)

        # Only a single-column primary key can autoincrement
        for column in table.columns.values():
            if column.auto_increment and list(schema.primary_key) != [column.name]:
                column.auto_increment = False

        for key, constraint in list(table.constraints.items()):
            if constraint.constraint_type == "FOREIGN KEY":
                del table.constraints[key]
                table.constraints[self.foreign_key_name(table_name, constraint.columns)] = constraint
        return table

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def introspect(self, table_name: str) -> TableSchema | None:
        client = self.client
        quoted = self.quote(table_name)

        master = await client.query(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :table",
            {"table": table_name},
        )
        if not master:
            return None

        table = TableSchema(name=table_name)

        pk_columns: list[tuple[int, str]] = []
        for row in await client.query(f"PRAGMA table_info({quoted})"):
            is_pk = int(row["pk"]) > 0
            if is_pk:
                pk_columns.append((int(row["pk"]), row["name"]))
            data_type, _ = self.normalize_type(row["type"] or "")
            table.columns[row["name"]] = ColumnSchema(
                name=row["name"],
                data_type=data_type,
                is_nullable=not (int(row["notnull"]) or is_pk),
                default=self.normalize_default(row["dflt_value"]),
            )

        primary_key = [name for _, name in sorted(pk_columns)]
        if primary_key:
            pk_name = self.primary_key_name(table_name)
            table.constraints[pk_name] = ConstraintSchema(
                name=pk_name, constraint_type="PRIMARY KEY", columns=primary_key
            )
            if len(primary_key) == 1 and _AUTOINCREMENT.search(master[0]["sql"] or ""):
                table.columns[primary_key[0]].auto_increment = True

        fk_rows: dict[int, list[dict]] = defaultdict(list)
        for row in await client.query(f"PRAGMA foreign_key_list({quoted})"):
            fk_rows[int(row["id"])].append(row)
        for rows in fk_rows.values():
            rows.sort(key=lambda r: int(r["seq"]))
            columns = [r["from"] for r in rows]
            fk_name = self.foreign_key_name(table_name, columns)
            table.constraints[fk_name] = ConstraintSchema(
                name=fk_name,
                constraint_type="FOREIGN KEY",
                columns=columns,
                references_table=rows[0]["table"],
                references_columns=[r["to"] for r in rows],
                on_delete=self.normalize_on_delete(rows[0]["on_delete"]),
            )

        for row in await client.query(f"PRAGMA index_list({quoted})"):
            # Only explicitly created indexes; skip pk/unique-constraint ones
            if row["origin"] != "c":
                continue
            info = await client.query(f"PRAGMA index_info({self.quote(row['name'])})")
            info.sort(key=lambda r: int(r["seqno"]))
            table.indexes[row["name"]] = IndexSchema(
                name=row["name"],
                columns=[r["name"] for r in info],
                is_unique=bool(int(row["unique"])),
            )

        return table

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def needs_rebuild(self, diff: TableDiff, dropped: list[ColumnSchema]) -> bool:
        """True if the diff cannot be applied with ADD COLUMN / index DDL."""
        if diff.altered_columns or diff.added_constraints or diff.removed_constraints:
            return True
        if dropped:
            return True
        return any(
            (not c.is_nullable and c.default is None) or c.auto_increment
            for c in diff.added_columns
        )

    def plan_alter(
        self, table_name: str, schema: SqliteTableSchema, actual: TableSchema
    ) -> list[str]:
        desired = self.desired_table(table_name, schema)
        diff = diff_tables(desired, actual)
        dropped = columns_to_drop(diff, self.allow_column_drops)

        if self.needs_rebuild(diff, dropped):
            return self.rebuild_statements(table_name, schema, desired, actual, dropped)

        # Removed columns are already handled (kept) above
        diff = diff.model_copy(update={"removed_columns": []})
        return build_plan(diff, self, self.allow_column_drops)

    def rebuild_statements(
        self,
        table_name: str,
        schema: SqliteTableSchema,
        desired: TableSchema,
        actual: TableSchema,
        dropped: list[ColumnSchema],
    ) -> list[str]:
        """Statements replacing *table_name* with a table of the desired shape.

        Live columns that left the table spec but may not be dropped are carried
        over unchanged.
        """
        dropped_names = {c.name for c in dropped}
        target = desired.model_copy(deep=True)
        for name, column in actual.columns.items():
            if name not in target.columns and name not in dropped_names:
                target.columns[name] = column

        temp_name = f"{table_name}{REBUILD_SUFFIX}"
        shared = ", ".join(self.quote(n) for n in target.columns if n in actual.columns)

        statements = [
            self.render_create_table(target.model_copy(update={"name": temp_name}), schema)
        ]
        if shared:
            statements.append(
                f"insert into {self.quote(temp_name)} ({shared}) "
                f"select {shared} from {self.quote(table_name)}"
            )
        statements += self.drop_table(table_name)
        statements.append(
            f"alter table {self.quote(temp_name)} rename to {self.quote(table_name)}"
        )
        for index in desired.indexes.values():
            statements += self.create_index(table_name, index)
        return statements

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_create_table(self, table: TableSchema, schema: SqliteTableSchema) -> str:
        primary_key = table.primary_key
        inline_pk = len(primary_key) == 1 and table.columns[primary_key[0]].auto_increment

        parts = []
        for column in table.columns.values():
            if inline_pk and column.name == primary_key[0]:
                parts.append(
                    f"{self.quote(column.name)} {column.data_type} primary key autoincrement"
                )
            else:
                parts.append(self.render_column(column))
        for constraint in table.constraints.values():
            if inline_pk and constraint.constraint_type == "PRIMARY KEY":
                continue
            parts.append(self.render_constraint(constraint))

        sql = f"create table {self.quote(table.name)} ({', '.join(parts)})"
        if getattr(schema, "strict", False):
            sql += " strict"
        return sql

    def insert_ignore(self, table: str, row: dict) -> str:
        return self.insert(table, row).replace("insert into", "insert or ignore into", 1)
