"""Cassandra driver.

Tables are introspected from ``system_schema`` and changed with the few
alterations CQL allows: adding and dropping regular columns and changing
table properties.  A different primary key, clustering order, column type
or static flag cannot be applied to an existing table and fails planning
with ``PlanningError``.

Cassandra is also the only driver with user-defined types (``plan_type``).
Seed data is not supported.

Statements are applied one at a time; schema changes are not transactional.
"""

import logging
import re
from typing import Any, ClassVar

from db_reconciler.adapters.base import TargetClient
from db_reconciler.drivers.base import BaseDriver
from db_reconciler.errors import (
    InvalidSchemaError,
    PlanningError,
    UnsupportedOperationError,
)
from db_reconciler.schema.comparator import diff_tables
from db_reconciler.schema.models import (
    ColumnChange,
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableSchema,
)
from db_reconciler.schema.planner import build_plan
from db_reconciler.schema.seed import sql_literal
from db_reconciler.spec.models import (
    CassandraDataTypeSchema,
    CassandraTableSchema,
    SeedData,
)

logger = logging.getLogger(__name__)

_VARCHAR = re.compile(r"\bvarchar\b")


def normalize_cql_type(data_type: str) -> str:
    """Canonical CQL type: lowercase, no spaces, ``varchar`` as ``text``.

    Example:
        >>> normalize_cql_type("MAP<varchar, INT>")
        'map<text,int>'
    """
    return _VARCHAR.sub("text", "".join(data_type.lower().split()))


def validate_cassandra_schema(table_name: str, schema: CassandraTableSchema) -> None:
    if schema.is_deleted:
        return
    if not schema.columns:
        raise InvalidSchemaError("table has no columns", table=table_name)
    if not schema.primary_key or not schema.primary_key[0]:
        raise InvalidSchemaError("table has no partition key", table=table_name)
    declared = {c.name for c in schema.columns}
    missing = [c for group in schema.primary_key for c in group if c not in declared]
    if missing:
        raise InvalidSchemaError(
            f"primary key references undeclared columns: {', '.join(missing)}",
            table=table_name,
        )
    clustering = [c for group in schema.primary_key[1:] for c in group]
    if schema.clustering_order and schema.clustering_order.column not in clustering:
        raise InvalidSchemaError(
            f"clustering order column {schema.clustering_order.column} "
            f"is not a clustering column",
            table=table_name,
        )


class LiveCassandraTable:
    """Introspected Cassandra table: columns plus key layout and properties."""

    def __init__(
        self,
        table: TableSchema,
        partition_key: list[str],
        clustering: list[tuple[str, str]],
        properties: dict[str, Any],
    ) -> None:
        self.table = table
        self.partition_key = partition_key
        self.clustering = clustering
        self.properties = properties


class CassandraDriver(BaseDriver):
    """Driver for Apache Cassandra."""

    name: ClassVar[str] = "cassandra"
    transactional_ddl: ClassVar[bool] = False
    supports_seed_data: ClassVar[bool] = False
    supports_types: ClassVar[bool] = True

    def _create_client(self) -> TargetClient:
        from db_reconciler.adapters.cassandra import CassandraTarget

        connection = self.require_connection()
        return CassandraTarget(
            connection.hosts, connection.username, connection.password, connection.keyspace
        )

    @property
    def keyspace(self) -> str:
        return self.connection.keyspace if self.connection else ""

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def qualified(self, name: str) -> str:
        if self.keyspace:
            return f"{self.quote(self.keyspace)}.{self.quote(name)}"
        return self.quote(name)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def desired_table(self, table_name: str, schema: CassandraTableSchema) -> TableSchema:
        table = TableSchema(name=table_name)
        for col in schema.columns:
            table.columns[col.name] = ColumnSchema(
                name=col.name,
                data_type=normalize_cql_type(col.type),
                is_static=bool(col.is_static),
            )
        return table

    def _property_assignments(self, properties: dict[str, Any]) -> list[str]:
        return [f"{key} = {sql_literal(value)}" for key, value in properties.items()]

    def _desired_properties(self, schema: CassandraTableSchema) -> dict[str, Any]:
        if schema.properties is None:
            return {}
        return schema.properties.model_dump(exclude_none=True)

    def create_table_statements(self, table_name: str, schema: CassandraTableSchema) -> list[str]:
        validate_cassandra_schema(table_name, schema)

        parts = []
        for col in schema.columns:
            static = " static" if col.is_static else ""
            parts.append(f"{self.quote(col.name)} {col.type}{static}")

        partition = ", ".join(self.quote(c) for c in schema.primary_key[0])
        clustering = [self.quote(c) for group in schema.primary_key[1:] for c in group]
        key = f"({partition})" + "".join(f", {c}" for c in clustering)
        parts.append(f"primary key ({key})")

        options = []
        if schema.clustering_order:
            direction = "desc" if schema.clustering_order.is_descending else "asc"
            options.append(
                f"clustering order by ({self.quote(schema.clustering_order.column)} {direction})"
            )
        options += self._property_assignments(self._desired_properties(schema))

        sql = f"create table {self.qualified(table_name)} ({', '.join(parts)})"
        if options:
            sql += " with " + " and ".join(options)
        return [sql]

    async def introspect(self, table_name: str) -> LiveCassandraTable | None:
        client = self.client
        params = (self.keyspace, table_name)

        rows = await client.query(
            "SELECT column_name, kind, position, type, clustering_order "
            "FROM system_schema.columns WHERE keyspace_name = %s AND table_name = %s",
            params,
        )
        if not rows:
            return None

        table = TableSchema(name=table_name)
        partition: list[tuple[int, str]] = []
        clustering: list[tuple[int, str, str]] = []
        for row in rows:
            table.columns[row["column_name"]] = ColumnSchema(
                name=row["column_name"],
                data_type=normalize_cql_type(row["type"]),
                is_static=row["kind"] == "static",
            )
            if row["kind"] == "partition_key":
                partition.append((row["position"], row["column_name"]))
            elif row["kind"] == "clustering":
                clustering.append((row["position"], row["column_name"], row["clustering_order"]))

        properties: dict[str, Any] = {}
        table_rows = await client.query(
            "SELECT comment, default_time_to_live, gc_grace_seconds "
            "FROM system_schema.tables WHERE keyspace_name = %s AND table_name = %s",
            params,
        )
        if table_rows:
            properties = dict(table_rows[0])

        return LiveCassandraTable(
            table=table,
            partition_key=[name for _, name in sorted(partition)],
            clustering=[(name, order) for _, name, order in sorted(clustering)],
            properties=properties,
        )

    def _check_key_layout(
        self, table_name: str, schema: CassandraTableSchema, live: LiveCassandraTable
    ) -> None:
        partition = list(schema.primary_key[0])
        clustering = [c for group in schema.primary_key[1:] for c in group]
        if partition != live.partition_key or clustering != [c for c, _ in live.clustering]:
            raise PlanningError(
                "primary key of an existing cassandra table cannot change",
                table=table_name,
                driver=self.name,
            )
        if schema.clustering_order:
            wanted = "desc" if schema.clustering_order.is_descending else "asc"
            have = dict(live.clustering).get(schema.clustering_order.column, "asc")
            if (have or "asc").lower() != wanted:
                raise PlanningError(
                    "clustering order of an existing cassandra table cannot change",
                    table=table_name,
                    driver=self.name,
                )

    async def plan_table(
        self,
        table_name: str,
        schema: CassandraTableSchema,
        seed_data: SeedData | None = None,
    ) -> list[str]:
        validate_cassandra_schema(table_name, schema)
        if seed_data is not None and seed_data.rows:
            logger.warning(f"cassandra: ignoring seed data for {table_name} (not supported)")

        live = await self.introspect(table_name)
        if schema.is_deleted:
            return [f"drop table {self.qualified(table_name)}"] if live is not None else []
        if live is None:
            return self.create_table_statements(table_name, schema)

        self._check_key_layout(table_name, schema, live)
        diff = diff_tables(self.desired_table(table_name, schema), live.table)
        statements = build_plan(diff, self, self.allow_column_drops)

        changed = {
            key: value
            for key, value in self._desired_properties(schema).items()
            if live.properties.get(key) != value
        }
        if changed:
            statements.append(
                f"alter table {self.qualified(table_name)} with "
                + " and ".join(self._property_assignments(changed))
            )
        return statements

    async def plan_seed_data(
        self, table_name: str, schema: CassandraTableSchema, seed_data: SeedData
    ) -> list[str]:
        raise UnsupportedOperationError(
            "seed data is not supported for cassandra",
            driver=self.name,
            table=table_name,
            phase="seed",
        )

    # ------------------------------------------------------------------
    # StatementRenderer
    # ------------------------------------------------------------------

    def add_column(self, table: str, column: ColumnSchema) -> list[str]:
        static = " static" if column.is_static else ""
        return [
            f"alter table {self.qualified(table)} add {self.quote(column.name)} "
            f"{column.data_type}{static}"
        ]

    def alter_column(self, table: str, change: ColumnChange) -> list[str]:
        raise PlanningError(
            f"column {change.name} changed from {change.old.data_type}"
            f"{' static' if change.old.is_static else ''} to {change.new.data_type}"
            f"{' static' if change.new.is_static else ''}; cassandra cannot alter columns",
            table=table,
            driver=self.name,
        )

    def drop_column(self, table: str, column: ColumnSchema) -> list[str]:
        return [f"alter table {self.qualified(table)} drop {self.quote(column.name)}"]

    def create_index(self, table: str, index: IndexSchema) -> list[str]:
        return []

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        return []

    def add_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        return []

    def drop_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        return []

    # ------------------------------------------------------------------
    # User-defined types
    # ------------------------------------------------------------------

    def create_type_statements(self, type_name: str, schema: CassandraDataTypeSchema) -> list[str]:
        if not schema.fields:
            raise InvalidSchemaError("type has no fields", table=type_name)
        fields = ", ".join(f"{self.quote(f.name)} {f.type}" for f in schema.fields)
        return [f"create type {self.qualified(type_name)} ({fields})"]

    async def introspect_type(self, type_name: str) -> dict[str, str] | None:
        rows = await self.client.query(
            "SELECT field_names, field_types FROM system_schema.types "
            "WHERE keyspace_name = %s AND type_name = %s",
            (self.keyspace, type_name),
        )
        if not rows:
            return None
        names = rows[0]["field_names"] or []
        types = rows[0]["field_types"] or []
        return {name: normalize_cql_type(t) for name, t in zip(names, types)}

    async def plan_type(self, type_name: str, schema: CassandraDataTypeSchema) -> list[str]:
        live = await self.introspect_type(type_name)

        if schema.is_deleted:
            return [f"drop type {self.qualified(type_name)}"] if live is not None else []
        if live is None:
            return self.create_type_statements(type_name, schema)

        statements = []
        for field in schema.fields:
            have = live.get(field.name)
            if have is None:
                statements.append(
                    f"alter type {self.qualified(type_name)} add {self.quote(field.name)} {field.type}"
                )
            elif have != normalize_cql_type(field.type):
                raise PlanningError(
                    f"field {field.name} changed from {have} to {field.type}; "
                    f"cassandra cannot alter type fields",
                    table=type_name,
                    driver=self.name,
                )
        for name in live:
            if name not in {f.name for f in schema.fields}:
                logger.info(f"cassandra: leaving field {type_name}.{name} in place")
        return statements
