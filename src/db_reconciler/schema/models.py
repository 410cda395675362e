"""Pydantic models for canonical table state and structural diffs.

This module contains the dialect-neutral description every driver converts
both desired and introspected state into before diffing:
- State models: ColumnSchema, IndexSchema, ConstraintSchema, TableSchema
- Diff models: ColumnChange, TableDiff

Canonicalization (type aliases, default spelling) is done by each driver
before values land in these models, identically for desired and live state.
"""

from pydantic import BaseModel, Field


# ============================================================================
# Canonical State Models
# ============================================================================


class ColumnSchema(BaseModel):
    """Schema for a table column.

    Example:
        >>> col = ColumnSchema(name="id", data_type="integer")
        >>> col.is_nullable
        True
    """

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    auto_increment: bool = False
    is_static: bool = False  # Cassandra static columns


class ConstraintSchema(BaseModel):
    """Schema for a table constraint."""

    name: str
    constraint_type: str  # PRIMARY KEY, FOREIGN KEY, UNIQUE
    columns: list[str] = Field(default_factory=list)
    references_table: str | None = None
    references_columns: list[str] | None = None
    on_delete: str | None = None

    def same_definition(self, other: "ConstraintSchema") -> bool:
        """True if both constraints enforce the same rule (names ignored)."""
        return (
            self.constraint_type == other.constraint_type
            and self.columns == other.columns
            and self.references_table == other.references_table
            and (self.references_columns or []) == (other.references_columns or [])
            and (self.on_delete or "NO ACTION") == (other.on_delete or "NO ACTION")
        )


class IndexSchema(BaseModel):
    """Schema for a table index."""

    name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False
    index_type: str | None = None

    def same_definition(self, other: "IndexSchema") -> bool:
        """True if both indexes cover the same columns the same way."""
        return (
            self.columns == other.columns
            and self.is_unique == other.is_unique
            and (self.index_type or None) == (other.index_type or None)
        )


class TableSchema(BaseModel):
    """Schema for a table, keyed by element name."""

    name: str
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    constraints: dict[str, ConstraintSchema] = Field(default_factory=dict)
    indexes: dict[str, IndexSchema] = Field(default_factory=dict)

    @property
    def primary_key(self) -> list[str]:
        for constraint in self.constraints.values():
            if constraint.constraint_type == "PRIMARY KEY":
                return list(constraint.columns)
        return []


# ============================================================================
# Diff Models
# ============================================================================


class ColumnChange(BaseModel):
    """A column present on both sides with a different definition."""

    old: ColumnSchema
    new: ColumnSchema

    @property
    def name(self) -> str:
        return self.new.name

    @property
    def type_changed(self) -> bool:
        return self.old.data_type != self.new.data_type

    @property
    def nullability_changed(self) -> bool:
        return self.old.is_nullable != self.new.is_nullable

    @property
    def default_changed(self) -> bool:
        return self.old.default != self.new.default


class TableDiff(BaseModel):
    """Structural difference between desired and live table state.

    Removed elements are listed even when the plan will not drop them;
    the drop policy is applied by the planner.

    Example:
        >>> TableDiff(table="users").is_empty
        True
    """

    table: str
    added_columns: list[ColumnSchema] = Field(default_factory=list)
    removed_columns: list[ColumnSchema] = Field(default_factory=list)
    altered_columns: list[ColumnChange] = Field(default_factory=list)
    added_indexes: list[IndexSchema] = Field(default_factory=list)
    removed_indexes: list[IndexSchema] = Field(default_factory=list)
    added_constraints: list[ConstraintSchema] = Field(default_factory=list)
    removed_constraints: list[ConstraintSchema] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True if nothing differs, including removed columns."""
        return not (
            self.added_columns
            or self.removed_columns
            or self.altered_columns
            or self.added_indexes
            or self.removed_indexes
            or self.added_constraints
            or self.removed_constraints
        )

    def format_report(self) -> str:
        """Format the diff as a human-readable report."""
        if self.is_empty:
            return f"{self.table}: converged"

        lines = [f"{self.table}:"]
        for col in self.added_columns:
            lines.append(f"  + column {col.name} {col.data_type}")
        for change in self.altered_columns:
            lines.append(
                f"  ~ column {change.name} {change.old.data_type} -> {change.new.data_type}"
            )
        for col in self.removed_columns:
            lines.append(f"  - column {col.name}")
        for idx in self.added_indexes:
            lines.append(f"  + index {idx.name} ({', '.join(idx.columns)})")
        for idx in self.removed_indexes:
            lines.append(f"  - index {idx.name}")
        for con in self.added_constraints:
            lines.append(f"  + {con.constraint_type.lower()} {con.name}")
        for con in self.removed_constraints:
            lines.append(f"  - {con.constraint_type.lower()} {con.name}")
        return "\n".join(lines)
