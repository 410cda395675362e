"""Tests for the MySQL, SQLite and rqlite drivers.

Catalog queries are answered by a small fake client keyed on SQL text.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from db_reconciler.drivers.mysql import MySQLDriver
from db_reconciler.drivers.rqlite import RqliteDriver
from db_reconciler.drivers.sqlite import REBUILD_SUFFIX, SqliteDriver
from db_reconciler.schema.models import ColumnSchema, ConstraintSchema, TableSchema
from db_reconciler.spec.models import MysqlTableSchema, SqliteTableSchema


class FakeCatalogClient:
    """Answers ``query`` by the first registered SQL fragment it contains."""

    def __init__(self, responses: dict[str, list[dict]]) -> None:
        self.responses = responses
        self.queries: list[str] = []

    async def query(self, sql, params=None):
        self.queries.append(sql)
        for fragment, rows in self.responses.items():
            if fragment in sql:
                return [dict(r) for r in rows]
        return []

    async def close(self):
        pass


MYSQL_USERS = MysqlTableSchema.model_validate({
    "primaryKey": ["id"],
    "defaultCharset": "utf8mb4",
    "columns": [
        {"name": "id", "type": "integer", "attributes": {"autoIncrement": True}},
        {"name": "email", "type": "varchar(255)", "constraints": {"notNull": True}},
        {"name": "status", "type": "varchar(16)", "default": "'active'"},
    ],
    "indexes": [{"columns": ["email"], "isUnique": True}],
})


class TestMySQLDriver:
    """MySQL canonicalization, introspection and rendering."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("INT(11)", "int"),
            ("integer", "int"),
            ("bigint(20) unsigned", "bigint unsigned"),
            ("boolean", "tinyint(1)"),
            ("VARCHAR(255)", "varchar(255)"),
            ("decimal(10, 2)", "decimal(10,2)"),
        ],
    )
    def test_normalize_type(self, raw, expected) -> None:
        assert MySQLDriver().normalize_type(raw)[0] == expected

    def test_normalize_default(self) -> None:
        driver = MySQLDriver()
        assert driver.normalize_default("'active'") == "active"
        assert driver.normalize_default("active") == "active"
        assert driver.normalize_default("CURRENT_TIMESTAMP()") == "current_timestamp"
        assert driver.normalize_default("NULL") is None

    def test_create_table(self) -> None:
        assert MySQLDriver().create_table_statements("users", MYSQL_USERS) == [
            "create table `users` (`id` int not null auto_increment, "
            "`email` varchar(255) not null, `status` varchar(16) default 'active', "
            "primary key (`id`)) default charset=utf8mb4",
            "create unique index `idx_users_email` on `users` (`email`)",
        ]

    def _catalog(self, columns: list[dict]) -> FakeCatalogClient:
        return FakeCatalogClient({
            "information_schema.TABLES": [{"TABLE_NAME": "users"}],
            "information_schema.COLUMNS": columns,
            "information_schema.KEY_COLUMN_USAGE": [
                {"CONSTRAINT_NAME": "PRIMARY", "CONSTRAINT_TYPE": "PRIMARY KEY",
                 "COLUMN_NAME": "id", "REFERENCED_TABLE_NAME": None,
                 "REFERENCED_COLUMN_NAME": None, "DELETE_RULE": None},
            ],
            "information_schema.STATISTICS": [
                {"INDEX_NAME": "idx_users_email", "COLUMN_NAME": "email",
                 "NON_UNIQUE": 0, "INDEX_TYPE": "BTREE"},
            ],
        })

    def _columns(self, status_type: str = "varchar(16)") -> list[dict]:
        return [
            {"COLUMN_NAME": "id", "COLUMN_TYPE": "int(11)", "IS_NULLABLE": "NO",
             "COLUMN_DEFAULT": None, "EXTRA": "auto_increment"},
            {"COLUMN_NAME": "email", "COLUMN_TYPE": "varchar(255)", "IS_NULLABLE": "NO",
             "COLUMN_DEFAULT": None, "EXTRA": ""},
            {"COLUMN_NAME": "status", "COLUMN_TYPE": status_type, "IS_NULLABLE": "YES",
             "COLUMN_DEFAULT": "active", "EXTRA": ""},
        ]

    def test_introspect_absent_table(self) -> None:
        driver = MySQLDriver()
        driver._client = FakeCatalogClient({})
        assert asyncio.run(driver.introspect("users")) is None

    def test_converged_table_empty_plan(self) -> None:
        driver = MySQLDriver()
        driver._client = self._catalog(self._columns())
        assert asyncio.run(driver.plan_table("users", MYSQL_USERS)) == []

    def test_changed_column_modified(self) -> None:
        driver = MySQLDriver()
        driver._client = self._catalog(self._columns(status_type="varchar(8)"))
        assert asyncio.run(driver.plan_table("users", MYSQL_USERS)) == [
            "alter table `users` modify column `status` varchar(16) default 'active'"
        ]

    def test_foreign_key_backing_index_ignored(self) -> None:
        driver = MySQLDriver()
        driver._client = FakeCatalogClient({
            "information_schema.TABLES": [{"TABLE_NAME": "orders"}],
            "information_schema.COLUMNS": [
                {"COLUMN_NAME": "user_id", "COLUMN_TYPE": "int", "IS_NULLABLE": "YES",
                 "COLUMN_DEFAULT": None, "EXTRA": ""},
            ],
            "information_schema.KEY_COLUMN_USAGE": [
                {"CONSTRAINT_NAME": "orders_user_id_fkey", "CONSTRAINT_TYPE": "FOREIGN KEY",
                 "COLUMN_NAME": "user_id", "REFERENCED_TABLE_NAME": "users",
                 "REFERENCED_COLUMN_NAME": "id", "DELETE_RULE": "RESTRICT"},
            ],
            "information_schema.STATISTICS": [
                {"INDEX_NAME": "orders_user_id_fkey", "COLUMN_NAME": "user_id",
                 "NON_UNIQUE": 1, "INDEX_TYPE": "BTREE"},
            ],
        })

        table = asyncio.run(driver.introspect("orders"))

        assert table.indexes == {}
        fk = table.constraints["orders_user_id_fkey"]
        assert fk.references_columns == ["id"]
        assert fk.on_delete == "NO ACTION"

    def test_drop_statements(self) -> None:
        driver = MySQLDriver()
        pk = ConstraintSchema(name="PRIMARY", constraint_type="PRIMARY KEY", columns=["id"])
        fk = ConstraintSchema(name="fk", constraint_type="FOREIGN KEY", columns=["a"],
                              references_table="t", references_columns=["id"])
        assert driver.drop_constraint("users", pk) == ["alter table `users` drop primary key"]
        assert driver.drop_constraint("users", fk) == ["alter table `users` drop foreign key `fk`"]

    def test_strings_escape_backslashes(self) -> None:
        assert MySQLDriver().literal("C:\\tmp") == "'C:\\\\tmp'"


SQLITE_USERS = SqliteTableSchema.model_validate({
    "primaryKey": ["id"],
    "columns": [
        {"name": "id", "type": "integer"},
        {"name": "name", "type": "text"},
    ],
})


def _sqlite_live(name_nullable: bool = True) -> TableSchema:
    return TableSchema(
        name="users",
        columns={
            "id": ColumnSchema(name="id", data_type="integer", is_nullable=False),
            "name": ColumnSchema(name="name", data_type="text", is_nullable=name_nullable),
        },
        constraints={
            "users_pkey": ConstraintSchema(
                name="users_pkey", constraint_type="PRIMARY KEY", columns=["id"]
            )
        },
    )


class TestSqliteDriver:
    """In-place changes and table rebuilds."""

    def test_create_autoincrement_inline(self) -> None:
        schema = SqliteTableSchema.model_validate({
            "primaryKey": ["id"],
            "strict": True,
            "columns": [
                {"name": "id", "type": "integer", "attributes": {"autoIncrement": True}},
                {"name": "name", "type": "text"},
            ],
        })
        assert SqliteDriver().create_table_statements("users", schema) == [
            'create table "users" ("id" integer primary key autoincrement, "name" text) strict'
        ]

    def test_nullable_column_added_in_place(self) -> None:
        schema = SQLITE_USERS.model_copy(deep=True)
        schema.columns.append(
            SqliteTableSchema.model_validate({"columns": [{"name": "age", "type": "integer"}]}).columns[0]
        )
        driver = SqliteDriver()
        driver.introspect = AsyncMock(return_value=_sqlite_live())

        assert asyncio.run(driver.plan_table("users", schema)) == [
            'alter table "users" add column "age" integer'
        ]

    def test_altered_column_rebuilds_table(self) -> None:
        schema = SqliteTableSchema.model_validate({
            "primaryKey": ["id"],
            "columns": [
                {"name": "id", "type": "integer"},
                {"name": "name", "type": "text", "constraints": {"notNull": True}},
            ],
            "indexes": [{"columns": ["name"]}],
        })
        driver = SqliteDriver()
        driver.introspect = AsyncMock(return_value=_sqlite_live())

        statements = asyncio.run(driver.plan_table("users", schema))

        temp = f"users{REBUILD_SUFFIX}"
        assert statements == [
            f'create table "{temp}" ("id" integer not null, "name" text not null, primary key ("id"))',
            f'insert into "{temp}" ("id", "name") select "id", "name" from "users"',
            'drop table "users"',
            f'alter table "{temp}" rename to "users"',
            'create index "idx_users_name" on "users" ("name")',
        ]

    def test_rebuild_keeps_undropped_columns(self) -> None:
        schema = SqliteTableSchema.model_validate({
            "primaryKey": ["id"],
            "columns": [
                {"name": "id", "type": "integer"},
                {"name": "name", "type": "text", "constraints": {"notNull": True}},
            ],
        })
        live = _sqlite_live()
        live.columns["legacy"] = ColumnSchema(name="legacy", data_type="text")
        driver = SqliteDriver()
        driver.introspect = AsyncMock(return_value=live)

        statements = asyncio.run(driver.plan_table("users", schema))

        assert '"legacy" text' in statements[0]
        assert '"legacy"' in statements[1]

    def test_dropped_column_rebuilds_when_allowed(self) -> None:
        live = _sqlite_live()
        live.columns["legacy"] = ColumnSchema(name="legacy", data_type="text")
        driver = SqliteDriver(allow_column_drops=True)
        driver.introspect = AsyncMock(return_value=live)

        statements = asyncio.run(driver.plan_table("users", SQLITE_USERS))

        assert statements[0].startswith('create table "users__rebuild"')
        assert "legacy" not in statements[0]
        assert "legacy" not in statements[1]

    def test_extra_column_without_drops_is_noop(self) -> None:
        live = _sqlite_live()
        live.columns["legacy"] = ColumnSchema(name="legacy", data_type="text")
        driver = SqliteDriver()
        driver.introspect = AsyncMock(return_value=live)
        assert asyncio.run(driver.plan_table("users", SQLITE_USERS)) == []

    def test_introspect_pragmas(self) -> None:
        driver = SqliteDriver()
        driver._client = FakeCatalogClient({
            "sqlite_master": [{"sql": "CREATE TABLE users (id integer primary key autoincrement, org_id integer)"}],
            "table_info": [
                {"name": "id", "type": "INTEGER", "notnull": 0, "dflt_value": None, "pk": 1},
                {"name": "org_id", "type": "integer", "notnull": 1, "dflt_value": "0", "pk": 0},
            ],
            "foreign_key_list": [
                {"id": 0, "seq": 0, "table": "orgs", "from": "org_id", "to": "id",
                 "on_delete": "CASCADE"},
            ],
            "index_list": [
                {"name": "idx_users_org_id", "unique": 0, "origin": "c"},
                {"name": "sqlite_autoindex_users_1", "unique": 1, "origin": "u"},
            ],
            "index_info": [{"seqno": 0, "name": "org_id"}],
        })

        table = asyncio.run(driver.introspect("users"))

        assert table.primary_key == ["id"]
        assert table.columns["id"].auto_increment is True
        assert table.columns["org_id"].is_nullable is False
        assert table.columns["org_id"].default == "0"
        assert table.constraints["users_org_id_fkey"].on_delete == "CASCADE"
        assert list(table.indexes) == ["idx_users_org_id"]

    def test_insert_or_ignore(self) -> None:
        assert SqliteDriver().insert_ignore("users", {"id": 1}) == (
            'insert or ignore into "users" ("id") values (1)'
        )


class TestRqliteDriver:
    """rqlite reuses SQLite planning and is transactional."""

    def test_shares_sqlite_rendering(self) -> None:
        assert RqliteDriver().create_table_statements("users", SQLITE_USERS) == (
            SqliteDriver().create_table_statements("users", SQLITE_USERS)
        )

    def test_transactional(self) -> None:
        assert RqliteDriver.transactional_ddl is True
        assert RqliteDriver.name == "rqlite"
