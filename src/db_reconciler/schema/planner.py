"""Order structural changes into an executable plan.

Turns a ``TableDiff`` into an ordered statement list using a dialect's
``StatementRenderer``.  Pure logic -- no I/O.

Ordering:

1. Drop indexes and constraints that reference a column about to be
   altered or dropped.
2. Column changes: add, then alter, then drop.
3. Remaining index drops, then index creations.
4. Remaining constraint drops, then constraint additions.

This keeps every ADD COLUMN ahead of the constraints that reference it and
every referencing constraint drop ahead of its column's DROP COLUMN.

Column drops are the one destructive step.  Whether they are emitted is
decided here, from ``allow_column_drops``, and nowhere else.  With drops
disabled a column that left the table spec stays on the table; a rename therefore
leaves both the old and the new column in place.

Usage:
    from db_reconciler.schema.comparator import diff_tables
    from db_reconciler.schema.planner import build_plan

    statements = build_plan(diff_tables(desired, actual), renderer)
"""

import logging
from typing import Protocol

from db_reconciler.schema.models import (
    ColumnChange,
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableDiff,
)

logger = logging.getLogger(__name__)


class StatementRenderer(Protocol):
    """Renders canonical changes as dialect-native statements.

    Each method returns a list so a dialect can expand one change into
    several statements (or none).
    """

    def add_column(self, table: str, column: ColumnSchema) -> list[str]:
        ...

    def alter_column(self, table: str, change: ColumnChange) -> list[str]:
        ...

    def drop_column(self, table: str, column: ColumnSchema) -> list[str]:
        ...

    def create_index(self, table: str, index: IndexSchema) -> list[str]:
        ...

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        ...

    def add_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        ...

    def drop_constraint(self, table: str, constraint: ConstraintSchema) -> list[str]:
        ...


def columns_to_drop(diff: TableDiff, allow_column_drops: bool) -> list[ColumnSchema]:
    """Apply the column-drop policy to a diff.

    Returns the removed columns that may be dropped; logs the ones kept.
    """
    if allow_column_drops:
        return list(diff.removed_columns)
    for col in diff.removed_columns:
        logger.info(
            f"leaving column {diff.table}.{col.name} in place (column drops disabled)"
        )
    return []


def build_plan(
    diff: TableDiff,
    renderer: StatementRenderer,
    allow_column_drops: bool = False,
) -> list[str]:
    """Build the ordered statement list for a table diff.

    Args:
        diff: Result of ``diff_tables(desired, actual)``.
        renderer: Dialect statement renderer.
        allow_column_drops: Emit DROP COLUMN for columns no longer in the
            desired schema.  Default ``False``.

    Returns:
        Ordered statements; empty when nothing needs to change.
    """
    table = diff.table
    dropped_columns = columns_to_drop(diff, allow_column_drops)

    touched: set[str] = {c.name for c in diff.altered_columns}
    touched |= {c.name for c in dropped_columns}

    early_index_drops = [i for i in diff.removed_indexes if touched & set(i.columns)]
    early_constraint_drops = [
        c for c in diff.removed_constraints if touched & set(c.columns)
    ]

    statements: list[str] = []

    # 1. Referencing indexes/constraints out of the way
    for con in early_constraint_drops:
        statements.extend(renderer.drop_constraint(table, con))
    for idx in early_index_drops:
        statements.extend(renderer.drop_index(table, idx))

    # 2. Columns
    for col in diff.added_columns:
        statements.extend(renderer.add_column(table, col))
    for change in diff.altered_columns:
        statements.extend(renderer.alter_column(table, change))
    for col in dropped_columns:
        statements.extend(renderer.drop_column(table, col))

    # 3. Indexes
    for idx in diff.removed_indexes:
        if idx not in early_index_drops:
            statements.extend(renderer.drop_index(table, idx))
    for idx in diff.added_indexes:
        statements.extend(renderer.create_index(table, idx))

    # 4. Constraints
    for con in diff.removed_constraints:
        if con not in early_constraint_drops:
            statements.extend(renderer.drop_constraint(table, con))
    for con in diff.added_constraints:
        statements.extend(renderer.add_constraint(table, con))

    return statements
