"""Tests for the structural comparator and the plan builder.

Both are pure: the tests build canonical TableSchema values directly and
use a recording renderer to observe statement order.
"""

from db_reconciler.schema.comparator import column_differs, diff_tables
from db_reconciler.schema.models import (
    ColumnChange,
    ColumnSchema,
    ConstraintSchema,
    IndexSchema,
    TableDiff,
    TableSchema,
)
from db_reconciler.schema.planner import build_plan, columns_to_drop


def _table(columns, constraints=(), indexes=()) -> TableSchema:
    return TableSchema(
        name="orders",
        columns={c.name: c for c in columns},
        constraints={c.name: c for c in constraints},
        indexes={i.name: i for i in indexes},
    )


def _col(name: str, data_type: str = "integer", **kwargs) -> ColumnSchema:
    return ColumnSchema(name=name, data_type=data_type, **kwargs)


PK = ConstraintSchema(name="orders_pkey", constraint_type="PRIMARY KEY", columns=["id"])


class RecordingRenderer:
    """Renders each change as a short tag so tests can assert ordering."""

    def add_column(self, table, column):
        return [f"add_column {column.name}"]

    def alter_column(self, table, change: ColumnChange):
        return [f"alter_column {change.name}"]

    def drop_column(self, table, column):
        return [f"drop_column {column.name}"]

    def create_index(self, table, index):
        return [f"create_index {index.name}"]

    def drop_index(self, table, index):
        return [f"drop_index {index.name}"]

    def add_constraint(self, table, constraint):
        return [f"add_constraint {constraint.name}"]

    def drop_constraint(self, table, constraint):
        return [f"drop_constraint {constraint.name}"]


class TestDiffTables:
    """Set operations over columns, indexes and constraints."""

    def test_identical_tables_empty_diff(self) -> None:
        table = _table([_col("id", is_nullable=False)], [PK])
        diff = diff_tables(table, table.model_copy(deep=True))
        assert diff.is_empty
        assert diff.format_report() == "orders: converged"

    def test_added_and_removed_columns(self) -> None:
        desired = _table([_col("id"), _col("total", "numeric(10,2)")])
        actual = _table([_col("id"), _col("legacy", "text")])

        diff = diff_tables(desired, actual)

        assert [c.name for c in diff.added_columns] == ["total"]
        assert [c.name for c in diff.removed_columns] == ["legacy"]
        assert not diff.altered_columns

    def test_added_columns_keep_declaration_order(self) -> None:
        desired = _table([_col("id"), _col("c"), _col("a"), _col("b")])
        actual = _table([_col("id")])
        assert [c.name for c in diff_tables(desired, actual).added_columns] == ["c", "a", "b"]

    def test_altered_column(self) -> None:
        desired = _table([_col("status", "text", is_nullable=False, default="'new'")])
        actual = _table([_col("status", "text")])

        diff = diff_tables(desired, actual)

        assert len(diff.altered_columns) == 1
        change = diff.altered_columns[0]
        assert change.nullability_changed
        assert change.default_changed
        assert not change.type_changed
        assert change.old.is_nullable is True

    def test_changed_index_is_drop_and_create(self) -> None:
        desired = _table([_col("id")], indexes=[IndexSchema(name="ix", columns=["id"], is_unique=True)])
        actual = _table([_col("id")], indexes=[IndexSchema(name="ix", columns=["id"])])

        diff = diff_tables(desired, actual)

        assert [i.is_unique for i in diff.removed_indexes] == [False]
        assert [i.is_unique for i in diff.added_indexes] == [True]

    def test_constraint_compared_by_definition(self) -> None:
        """on_delete None and NO ACTION are the same rule."""
        fk_live = ConstraintSchema(
            name="fk", constraint_type="FOREIGN KEY", columns=["user_id"],
            references_table="users", references_columns=["id"], on_delete="NO ACTION",
        )
        fk_desired = fk_live.model_copy(update={"on_delete": None})
        desired = _table([_col("user_id")], [fk_desired])
        actual = _table([_col("user_id")], [fk_live])
        assert diff_tables(desired, actual).is_empty

    def test_column_differs_on_auto_increment(self) -> None:
        assert column_differs(_col("id", auto_increment=True), _col("id"))
        assert not column_differs(_col("id"), _col("id"))

    def test_report_lists_changes(self) -> None:
        desired = _table([_col("id"), _col("total")])
        actual = _table([_col("id", "bigint")])
        report = diff_tables(desired, actual).format_report()
        assert "+ column total integer" in report
        assert "~ column id bigint -> integer" in report


class TestColumnDropPolicy:
    """Column drops happen only when explicitly allowed."""

    def test_drops_disabled_by_default(self) -> None:
        diff = TableDiff(table="orders", removed_columns=[_col("legacy")])
        assert columns_to_drop(diff, allow_column_drops=False) == []
        assert build_plan(diff, RecordingRenderer()) == []

    def test_drops_enabled(self) -> None:
        diff = TableDiff(table="orders", removed_columns=[_col("legacy")])
        assert build_plan(diff, RecordingRenderer(), allow_column_drops=True) == [
            "drop_column legacy"
        ]

    def test_rename_keeps_old_column(self) -> None:
        """A rename is an add plus a kept column when drops are disabled."""
        desired = _table([_col("id"), _col("full_name", "text")])
        actual = _table([_col("id"), _col("name", "text")])
        plan = build_plan(diff_tables(desired, actual), RecordingRenderer())
        assert plan == ["add_column full_name"]


class TestBuildPlanOrdering:
    """Statement order produced by build_plan."""

    def test_empty_diff_empty_plan(self) -> None:
        assert build_plan(TableDiff(table="orders"), RecordingRenderer()) == []

    def test_column_adds_before_constraints(self) -> None:
        """A new column exists before the foreign key that references it."""
        fk = ConstraintSchema(
            name="orders_user_id_fkey", constraint_type="FOREIGN KEY", columns=["user_id"],
            references_table="users", references_columns=["id"],
        )
        desired = _table([_col("id"), _col("user_id")], [fk],
                         [IndexSchema(name="idx_orders_user_id", columns=["user_id"])])
        actual = _table([_col("id")])

        plan = build_plan(diff_tables(desired, actual), RecordingRenderer())

        assert plan == [
            "add_column user_id",
            "create_index idx_orders_user_id",
            "add_constraint orders_user_id_fkey",
        ]

    def test_referencing_drops_before_column_drop(self) -> None:
        fk = ConstraintSchema(
            name="orders_user_id_fkey", constraint_type="FOREIGN KEY", columns=["user_id"],
            references_table="users", references_columns=["id"],
        )
        index = IndexSchema(name="idx_orders_user_id", columns=["user_id"])
        desired = _table([_col("id")])
        actual = _table([_col("id"), _col("user_id")], [fk], [index])

        plan = build_plan(diff_tables(desired, actual), RecordingRenderer(), allow_column_drops=True)

        assert plan == [
            "drop_constraint orders_user_id_fkey",
            "drop_index idx_orders_user_id",
            "drop_column user_id",
        ]

    def test_full_order(self) -> None:
        """add, alter, drop columns; then index drops/creates; then constraints."""
        diff = TableDiff(
            table="orders",
            added_columns=[_col("a")],
            altered_columns=[ColumnChange(old=_col("b"), new=_col("b", "bigint"))],
            removed_columns=[_col("c")],
            added_indexes=[IndexSchema(name="new_ix", columns=["a"])],
            removed_indexes=[IndexSchema(name="old_ix", columns=["id"])],
            added_constraints=[PK],
            removed_constraints=[PK.model_copy(update={"name": "old_pkey"})],
        )

        plan = build_plan(diff, RecordingRenderer(), allow_column_drops=True)

        assert plan == [
            "add_column a",
            "alter_column b",
            "drop_column c",
            "drop_index old_ix",
            "create_index new_ix",
            "drop_constraint old_pkey",
            "add_constraint orders_pkey",
        ]
