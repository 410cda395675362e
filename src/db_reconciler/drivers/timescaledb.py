"""TimescaleDB driver.

Postgres with hypertables.  A table whose schema sets ``isHypertable`` is
converted with ``create_hypertable`` after it is created, or, if it already
exists as a plain table, on the next plan (migrating existing rows).

Indexes TimescaleDB creates on the time dimension are not reported as
removals unless the schema declares an index of the same name.
"""

from typing import ClassVar

from db_reconciler.drivers.postgres import PostgresDriver
from db_reconciler.errors import InvalidSchemaError
from db_reconciler.schema.models import TableDiff, TableSchema
from db_reconciler.spec.models import TimescaleHypertable, TimescaleTableSchema


class TimescaleDBDriver(PostgresDriver):
    """Driver for TimescaleDB."""

    name: ClassVar[str] = "timescaledb"
    transactional_ddl: ClassVar[bool] = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._hypertables: dict[str, bool] = {}

    async def introspect(self, table_name: str) -> TableSchema | None:
        async with self._introspector() as introspector:
            actual = await introspector.introspect_table(table_name)
            if actual is not None:
                self._hypertables[table_name] = await introspector.is_hypertable(table_name)
        if actual is not None:
            self.canonicalize_live(actual)
        return actual

    def hypertable_statement(
        self, table_name: str, hypertable: TimescaleHypertable, migrate_data: bool = False
    ) -> str:
        args = [self.literal(table_name), self.literal(hypertable.time_column_name)]
        if hypertable.partitioning_column:
            args.append(f"partitioning_column => {self.literal(hypertable.partitioning_column)}")
            if hypertable.number_partitions:
                args.append(f"number_partitions => {hypertable.number_partitions}")
        if hypertable.chunk_time_interval:
            args.append(f"chunk_time_interval => interval {self.literal(hypertable.chunk_time_interval)}")
        if hypertable.create_default_indexes is False:
            args.append("create_default_indexes => false")
        if migrate_data:
            args.append("migrate_data => true")
        args.append("if_not_exists => true")
        return f"select create_hypertable({', '.join(args)})"

    def _wants_hypertable(self, schema: TimescaleTableSchema) -> bool:
        if not getattr(schema, "is_hypertable", False):
            return False
        if schema.hypertable is None:
            raise InvalidSchemaError("isHypertable is set without a hypertable block")
        return True

    def create_table_statements(self, table_name: str, schema: TimescaleTableSchema) -> list[str]:
        statements = super().create_table_statements(table_name, schema)
        if self._wants_hypertable(schema):
            statements.append(self.hypertable_statement(table_name, schema.hypertable))
        return statements

    def diff(self, table_name: str, schema: TimescaleTableSchema, actual: TableSchema) -> TableDiff:
        hypertable = schema.hypertable if self._wants_hypertable(schema) else None
        if hypertable is not None:
            managed = {f"{table_name}_{hypertable.time_column_name}_idx"}
            if hypertable.partitioning_column:
                managed.add(
                    f"{table_name}_{hypertable.partitioning_column}_{hypertable.time_column_name}_idx"
                )
            declared = {i.name for i in schema.indexes if i.name}
            for name in managed - declared:
                actual.indexes.pop(name, None)
        return super().diff(table_name, schema, actual)

    def plan_alter(
        self, table_name: str, schema: TimescaleTableSchema, actual: TableSchema
    ) -> list[str]:
        statements = super().plan_alter(table_name, schema, actual)
        if self._wants_hypertable(schema) and not self._hypertables.get(table_name, False):
            statements.append(
                self.hypertable_statement(table_name, schema.hypertable, migrate_data=True)
            )
        return statements
