"""Structural comparison of desired and live tables using set operations.

Compares two canonical ``TableSchema`` values.  Pure logic -- no I/O, no
database connections.  Elements are identified by name only: a renamed
column shows up as one removal and one addition.

Usage:
    from db_reconciler.schema.comparator import diff_tables

    diff = diff_tables(desired, actual)
    if diff.is_empty:
        print("converged")
    else:
        print(diff.format_report())
"""

from db_reconciler.schema.models import ColumnChange, ColumnSchema, TableDiff, TableSchema


def column_differs(desired: ColumnSchema, actual: ColumnSchema) -> bool:
    """True if two same-named columns differ after canonicalization."""
    return (
        desired.data_type != actual.data_type
        or desired.is_nullable != actual.is_nullable
        or desired.default != actual.default
        or desired.auto_increment != actual.auto_increment
        or desired.is_static != actual.is_static
    )


def diff_tables(desired: TableSchema, actual: TableSchema) -> TableDiff:
    """Compute the difference between desired and actual table state.

    Performs independent set operations on columns, indexes and
    constraints:
    - Columns in *desired* but not *actual*: added
    - Columns in *actual* but not *desired*: removed
    - Same-named columns with a different definition: altered
    - Same-named indexes/constraints with a different definition are
      reported as removed + added

    Added elements keep the desired declaration order; removed elements
    keep the live order.

    Examples:
        >>> from db_reconciler.schema.models import ColumnSchema, TableSchema
        >>> desired = TableSchema(name="users", columns={
        ...     "id": ColumnSchema(name="id", data_type="integer"),
        ...     "age": ColumnSchema(name="age", data_type="integer"),
        ... })
        >>> actual = TableSchema(name="users", columns={
        ...     "id": ColumnSchema(name="id", data_type="integer"),
        ... })
        >>> [c.name for c in diff_tables(desired, actual).added_columns]
        ['age']
    """
    diff = TableDiff(table=desired.name)

    # Columns
    diff.added_columns = [
        col for name, col in desired.columns.items() if name not in actual.columns
    ]
    diff.removed_columns = [
        col for name, col in actual.columns.items() if name not in desired.columns
    ]
    for name, want in desired.columns.items():
        have = actual.columns.get(name)
        if have is not None and column_differs(want, have):
            diff.altered_columns.append(ColumnChange(old=have, new=want))

    # Indexes
    for name, want in desired.indexes.items():
        have = actual.indexes.get(name)
        if have is None:
            diff.added_indexes.append(want)
        elif not want.same_definition(have):
            diff.removed_indexes.append(have)
            diff.added_indexes.append(want)
    diff.removed_indexes.extend(
        idx for name, idx in actual.indexes.items() if name not in desired.indexes
    )

    # Constraints
    for name, want in desired.constraints.items():
        have = actual.constraints.get(name)
        if have is None:
            diff.added_constraints.append(want)
        elif not want.same_definition(have):
            diff.removed_constraints.append(have)
            diff.added_constraints.append(want)
    diff.removed_constraints.extend(
        con for name, con in actual.constraints.items() if name not in desired.constraints
    )

    return diff
