"""MySQL driver.

Introspects ``information_schema`` and applies statements through
``AsyncSqlTarget`` (SQLAlchemy + aiomysql).  MySQL commits DDL implicitly,
so plans are applied statement by statement and a mid-plan failure is
reported as a partial application.

Column changes are rendered as ``modify column`` with the full new column
definition.
"""

import re
from collections import defaultdict
from typing import ClassVar

from db_reconciler.adapters.base import TargetClient
from db_reconciler.adapters.sql import AsyncSqlTarget
from db_reconciler.drivers.base import SqlDriver
from db_reconciler.schema.models import (
    ColumnChange,
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableSchema,
)
from db_reconciler.spec.models import MysqlTableSchema

MYSQL_TYPE_ALIASES = {
    "integer": "int",
    "bool": "tinyint(1)",
    "boolean": "tinyint(1)",
    "numeric": "decimal",
    "dec": "decimal",
    "double precision": "double",
    "real": "double",
    "character varying": "varchar",
    "character": "char",
}

# Integer display widths (``int(11)``) are cosmetic and dropped by MySQL 8
_INTEGER_WIDTH = re.compile(r"^(tinyint|smallint|mediumint|int|bigint)\(\d+\)(.*)$")
_KEYWORD_DEFAULTS = {"current_timestamp", "current_timestamp()", "now()"}


class MySQLDriver(SqlDriver):
    """Driver for MySQL and MariaDB."""

    name: ClassVar[str] = "mysql"
    transactional_ddl: ClassVar[bool] = False
    identifier_limit: ClassVar[int] = 64
    primary_key_name_template: ClassVar[str] = "PRIMARY"
    backslash_escapes: ClassVar[bool] = True

    def _create_client(self) -> TargetClient:
        return AsyncSqlTarget(self.require_connection().uri, self.name)

    def quote(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"

    # ------------------------------------------------------------------
    # Canonicalization
    # ------------------------------------------------------------------

    def normalize_type(self, data_type: str) -> tuple[str, bool]:
        value = " ".join(data_type.lower().split())
        if value == "serial":
            return "bigint unsigned", True
        if value in ("tinyint(1)", "bool", "boolean"):
            return "tinyint(1)", False

        match = _INTEGER_WIDTH.match(value)
        if match:
            value = match.group(1) + match.group(2)

        base, paren, rest = value.partition("(")
        base = MYSQL_TYPE_ALIASES.get(base.strip(), base.strip())
        return f"{base}{paren}{rest.replace(' ', '') if paren else ''}", False

    def normalize_default(self, default: str | None) -> str | None:
        if default is None:
            return None
        value = default.strip()
        if len(value) >= 2 and value[0] == value[-1] == "'":
            value = value[1:-1].replace("''", "'")
        if value.lower() == "null":
            return None
        if value.lower() in _KEYWORD_DEFAULTS:
            return "current_timestamp"
        return value

    def normalize_index_type(self, index_type: str | None) -> str | None:
        return (index_type or "btree").lower()

    def normalize_on_delete(self, rule: str | None) -> str:
        canonical = super().normalize_on_delete(rule)
        return "NO ACTION" if canonical == "RESTRICT" else canonical

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def introspect(self, table_name: str) -> TableSchema | None:
        client = self.client
        params = {"table": table_name}

        exists = await client.query(
            "SELECT TABLE_NAME FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = :table",
            params,
        )
        if not exists:
            return None

        table = TableSchema(name=table_name)

        columns = await client.query(
            "SELECT COLUMN_NAME, COLUMN_TYPE, IS_NULLABLE, COLUMN_DEFAULT, EXTRA "
            "FROM information_schema.COLUMNS "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = :table "
            "ORDER BY ORDINAL_POSITION",
            params,
        )
        for row in columns:
            data_type, _ = self.normalize_type(row["COLUMN_TYPE"])
            auto_increment = "auto_increment" in (row["EXTRA"] or "").lower()
            default = row["COLUMN_DEFAULT"]
            table.columns[row["COLUMN_NAME"]] = ColumnSchema(
                name=row["COLUMN_NAME"],
                data_type=data_type,
                is_nullable=row["IS_NULLABLE"] == "YES",
                default=None if auto_increment else self.normalize_default(
                    None if default is None else str(default)
                ),
                auto_increment=auto_increment,
            )

        constraints = await client.query(
            "SELECT kcu.CONSTRAINT_NAME, tc.CONSTRAINT_TYPE, kcu.COLUMN_NAME, "
            "kcu.REFERENCED_TABLE_NAME, kcu.REFERENCED_COLUMN_NAME, rc.DELETE_RULE "
            "FROM information_schema.KEY_COLUMN_USAGE kcu "
            "JOIN information_schema.TABLE_CONSTRAINTS tc "
            "ON tc.CONSTRAINT_SCHEMA = kcu.CONSTRAINT_SCHEMA "
            "AND tc.TABLE_NAME = kcu.TABLE_NAME "
            "AND tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME "
            "LEFT JOIN information_schema.REFERENTIAL_CONSTRAINTS rc "
            "ON rc.CONSTRAINT_SCHEMA = kcu.CONSTRAINT_SCHEMA "
            "AND rc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME "
            "WHERE kcu.TABLE_SCHEMA = DATABASE() AND kcu.TABLE_NAME = :table "
            "AND tc.CONSTRAINT_TYPE IN ('PRIMARY KEY', 'FOREIGN KEY') "
            "ORDER BY kcu.CONSTRAINT_NAME, kcu.ORDINAL_POSITION",
            params,
        )
        for row in constraints:
            name = row["CONSTRAINT_NAME"]
            constraint = table.constraints.get(name)
            if constraint is None:
                is_fk = row["CONSTRAINT_TYPE"] == "FOREIGN KEY"
                constraint = ConstraintSchema(
                    name=name,
                    constraint_type=row["CONSTRAINT_TYPE"],
                    references_table=row["REFERENCED_TABLE_NAME"] if is_fk else None,
                    references_columns=[] if is_fk else None,
                    on_delete=self.normalize_on_delete(row["DELETE_RULE"]) if is_fk else None,
                )
                table.constraints[name] = constraint
            constraint.columns.append(row["COLUMN_NAME"])
            if constraint.references_columns is not None:
                constraint.references_columns.append(row["REFERENCED_COLUMN_NAME"])

        foreign_keys = {
            n for n, c in table.constraints.items() if c.constraint_type == "FOREIGN KEY"
        }
        index_rows = await client.query(
            "SELECT INDEX_NAME, COLUMN_NAME, NON_UNIQUE, INDEX_TYPE "
            "FROM information_schema.STATISTICS "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = :table "
            "AND INDEX_NAME <> 'PRIMARY' "
            "ORDER BY INDEX_NAME, SEQ_IN_INDEX",
            params,
        )
        index_columns: dict[str, list[str]] = defaultdict(list)
        index_info: dict[str, dict] = {}
        for row in index_rows:
            name = row["INDEX_NAME"]
            # MySQL backs every foreign key with an index of the same name
            if name in foreign_keys:
                continue
            index_columns[name].append(row["COLUMN_NAME"])
            index_info.setdefault(name, row)
        for name, cols in index_columns.items():
            info = index_info[name]
            table.indexes[name] = IndexSchema(
                name=name,
                columns=cols,
                is_unique=not int(info["NON_UNIQUE"]),
                index_type=self.normalize_index_type(info["INDEX_TYPE"]),
            )

        return table

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_column(self, column: ColumnSchema) -> str:
        parts = [self.quote(column.name), column.data_type]
        if not column.is_nullable:
            parts.append("not null")
        if column.default is not None:
            default = column.default
            if default.lower() not in _KEYWORD_DEFAULTS:
                default = self.literal(default)
            parts.append(f"default {default}")
        if column.auto_increment:
            parts.append("auto_increment")
        return " ".join(parts)

    def render_create_table(self, table: TableSchema, schema: MysqlTableSchema) -> str:
        sql = super().render_create_table(table, schema)
        if getattr(schema, "default_charset", None):
            sql += f" default charset={schema.default_charset}"
        if getattr(schema, "collation", None):
            sql += f" collate={schema.collation}"
        return sql

    def alter_column(self, table: str, change: ColumnChange) -> list[str]:
        return [f"alter table {self.quote(table)} modify column {self.render_column(change.new)}"]

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        return [f"drop index {self.quote(index.name)} on {self.quote(table)}"]

    def add_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        return [f"alter table {self.quote(table)} add {self.render_constraint(constraint)}"]

    def drop_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        if constraint.constraint_type == "PRIMARY KEY":
            return [f"alter table {self.quote(table)} drop primary key"]
        return [f"alter table {self.quote(table)} drop foreign key {self.quote(constraint.name)}"]

    def insert_ignore(self, table: str, row: dict) -> str:
        return self.insert(table, row).replace("insert into", "insert ignore into", 1)
