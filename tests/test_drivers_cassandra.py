"""Tests for the Cassandra driver: tables, properties and user-defined types."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from db_reconciler.config.models import ConnectionParams
from db_reconciler.drivers.cassandra import (
    CassandraDriver,
    LiveCassandraTable,
    normalize_cql_type,
    validate_cassandra_schema,
)
from db_reconciler.errors import InvalidSchemaError, PlanningError, UnsupportedOperationError
from db_reconciler.schema.models import ColumnSchema, TableSchema
from db_reconciler.spec.models import CassandraDataTypeSchema, CassandraTableSchema, SeedData

EVENTS = CassandraTableSchema.model_validate({
    "primaryKey": [["id"], ["ts"]],
    "clusteringOrder": {"column": "ts", "isDescending": True},
    "columns": [
        {"name": "id", "type": "uuid"},
        {"name": "ts", "type": "timestamp"},
        {"name": "payload", "type": "text"},
    ],
    "properties": {"comment": "event log"},
})


def _live(columns: dict[str, str], partition=("id",), clustering=(("ts", "desc"),), properties=None):
    table = TableSchema(
        name="events",
        columns={n: ColumnSchema(name=n, data_type=t) for n, t in columns.items()},
    )
    return LiveCassandraTable(
        table=table,
        partition_key=list(partition),
        clustering=list(clustering),
        properties=properties if properties is not None else {"comment": "event log"},
    )


LIVE_COLUMNS = {"id": "uuid", "ts": "timestamp", "payload": "text"}


class TestCassandraSchema:
    """Validation and type canonicalization."""

    def test_normalize_cql_type(self) -> None:
        assert normalize_cql_type("MAP<varchar, INT>") == "map<text,int>"
        assert normalize_cql_type("frozen<list<text>>") == "frozen<list<text>>"

    def test_partition_key_required(self) -> None:
        schema = CassandraTableSchema.model_validate({"columns": [{"name": "id", "type": "uuid"}]})
        with pytest.raises(InvalidSchemaError, match="partition key"):
            validate_cassandra_schema("events", schema)

    def test_clustering_order_column_must_cluster(self) -> None:
        schema = EVENTS.model_copy(update={"clustering_order": EVENTS.clustering_order.model_copy(
            update={"column": "payload"}
        )})
        with pytest.raises(InvalidSchemaError, match="not a clustering column"):
            validate_cassandra_schema("events", schema)


class TestCassandraTables:
    """Table create and alter planning."""

    def test_create_table(self) -> None:
        driver = CassandraDriver(ConnectionParams(hosts=["127.0.0.1"], keyspace="app"))
        assert driver.create_table_statements("events", EVENTS) == [
            'create table "app"."events" ("id" uuid, "ts" timestamp, "payload" text, '
            'primary key (("id"), "ts")) with clustering order by ("ts" desc) '
            "and comment = 'event log'"
        ]

    def test_plan_absent_table(self) -> None:
        driver = CassandraDriver()
        driver.introspect = AsyncMock(return_value=None)
        statements = asyncio.run(driver.plan_table("events", EVENTS))
        assert statements == driver.create_table_statements("events", EVENTS)

    def test_plan_converged(self) -> None:
        driver = CassandraDriver()
        driver.introspect = AsyncMock(return_value=_live(LIVE_COLUMNS))
        assert asyncio.run(driver.plan_table("events", EVENTS)) == []

    def test_add_column(self) -> None:
        driver = CassandraDriver()
        driver.introspect = AsyncMock(return_value=_live({"id": "uuid", "ts": "timestamp"}))
        assert asyncio.run(driver.plan_table("events", EVENTS)) == [
            'alter table "events" add "payload" text'
        ]

    def test_changed_property(self) -> None:
        driver = CassandraDriver()
        driver.introspect = AsyncMock(
            return_value=_live(LIVE_COLUMNS, properties={"comment": "old"})
        )
        assert asyncio.run(driver.plan_table("events", EVENTS)) == [
            "alter table \"events\" with comment = 'event log'"
        ]

    def test_changed_primary_key_fails(self) -> None:
        driver = CassandraDriver()
        driver.introspect = AsyncMock(return_value=_live(LIVE_COLUMNS, partition=("payload",)))
        with pytest.raises(PlanningError, match="primary key"):
            asyncio.run(driver.plan_table("events", EVENTS))

    def test_changed_clustering_order_fails(self) -> None:
        driver = CassandraDriver()
        driver.introspect = AsyncMock(return_value=_live(LIVE_COLUMNS, clustering=(("ts", "asc"),)))
        with pytest.raises(PlanningError, match="clustering order"):
            asyncio.run(driver.plan_table("events", EVENTS))

    def test_changed_column_type_fails(self) -> None:
        driver = CassandraDriver()
        driver.introspect = AsyncMock(
            return_value=_live({"id": "uuid", "ts": "timestamp", "payload": "blob"})
        )
        with pytest.raises(PlanningError, match="cannot alter columns"):
            asyncio.run(driver.plan_table("events", EVENTS))

    def test_seed_data_ignored_in_table_plan(self) -> None:
        seed = SeedData.model_validate({"rows": [{"columns": [{"column": "id", "value": {"str": "x"}}]}]})
        driver = CassandraDriver()
        driver.introspect = AsyncMock(return_value=_live(LIVE_COLUMNS))
        assert asyncio.run(driver.plan_table("events", EVENTS, seed)) == []

    def test_seed_planning_unsupported(self) -> None:
        driver = CassandraDriver()
        with pytest.raises(UnsupportedOperationError):
            asyncio.run(driver.plan_seed_data("events", EVENTS, SeedData()))

    def test_introspect_system_schema(self) -> None:
        driver = CassandraDriver(ConnectionParams(hosts=["h"], keyspace="app"))
        client = AsyncMock()
        client.query = AsyncMock(side_effect=[
            [
                {"column_name": "id", "kind": "partition_key", "position": 0,
                 "type": "uuid", "clustering_order": "none"},
                {"column_name": "ts", "kind": "clustering", "position": 0,
                 "type": "timestamp", "clustering_order": "desc"},
                {"column_name": "payload", "kind": "regular", "position": -1,
                 "type": "text", "clustering_order": "none"},
            ],
            [{"comment": "event log", "default_time_to_live": 0, "gc_grace_seconds": 864000}],
        ])
        driver._client = client

        live = asyncio.run(driver.introspect("events"))

        assert live.partition_key == ["id"]
        assert live.clustering == [("ts", "desc")]
        assert live.properties["comment"] == "event log"
        assert client.query.await_args_list[0].args[1] == ("app", "events")


class TestCassandraTypes:
    """User-defined type planning."""

    ADDRESS = CassandraDataTypeSchema.model_validate({
        "fields": [{"name": "street", "type": "text"}, {"name": "zip", "type": "int"}]
    })

    def test_create_type(self) -> None:
        driver = CassandraDriver()
        driver.introspect_type = AsyncMock(return_value=None)
        assert asyncio.run(driver.plan_type("address", self.ADDRESS)) == [
            'create type "address" ("street" text, "zip" int)'
        ]

    def test_add_field(self) -> None:
        driver = CassandraDriver()
        driver.introspect_type = AsyncMock(return_value={"street": "text"})
        assert asyncio.run(driver.plan_type("address", self.ADDRESS)) == [
            'alter type "address" add "zip" int'
        ]

    def test_changed_field_fails(self) -> None:
        driver = CassandraDriver()
        driver.introspect_type = AsyncMock(return_value={"street": "text", "zip": "text"})
        with pytest.raises(PlanningError):
            asyncio.run(driver.plan_type("address", self.ADDRESS))

    def test_drop_type(self) -> None:
        driver = CassandraDriver()
        driver.introspect_type = AsyncMock(return_value={"street": "text"})
        schema = self.ADDRESS.model_copy(update={"is_deleted": True})
        assert asyncio.run(driver.plan_type("address", schema)) == ['drop type "address"']
