"""Canonical table state, structural diffing, plan ordering and seed planning.

Usage:
    from db_reconciler.schema import diff_tables, build_plan, TableSchema
"""

from db_reconciler.schema.comparator import diff_tables
from db_reconciler.schema.models import (
    ColumnChange,
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableDiff,
    TableSchema,
)
from db_reconciler.schema.planner import StatementRenderer, build_plan, columns_to_drop
from db_reconciler.schema.seed import SeedRenderer, offline_seed_statements, plan_seed_rows

__all__ = [
    "ColumnChange",
    "ColumnSchema",
    "ConstraintSchema",
    "IndexSchema",
    "TableDiff",
    "TableSchema",
    "diff_tables",
    "StatementRenderer",
    "build_plan",
    "columns_to_drop",
    "SeedRenderer",
    "plan_seed_rows",
    "offline_seed_statements",
]
