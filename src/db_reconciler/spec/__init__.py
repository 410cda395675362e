"""Desired-state specification models and loader.

Usage:
    from db_reconciler.spec import TableSpec, load_table_spec
"""

from db_reconciler.spec.loader import load_table_spec, load_type_spec
from db_reconciler.spec.models import (
    SCHEMA_BRANCHES,
    CassandraDataTypeSchema,
    CassandraTableSchema,
    DataTypeSpec,
    DialectSchemas,
    DialectTypeSchemas,
    MysqlTableSchema,
    SeedData,
    SeedDataRow,
    SqliteTableSchema,
    SqlTableSchema,
    TableSpec,
    TimescaleTableSchema,
)

__all__ = [
    "SCHEMA_BRANCHES",
    "TableSpec",
    "DataTypeSpec",
    "DialectSchemas",
    "DialectTypeSchemas",
    "SqlTableSchema",
    "MysqlTableSchema",
    "SqliteTableSchema",
    "TimescaleTableSchema",
    "CassandraTableSchema",
    "CassandraDataTypeSchema",
    "SeedData",
    "SeedDataRow",
    "load_table_spec",
    "load_type_spec",
]
