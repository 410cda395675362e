"""Seed data reconciliation.

Plans the statements that make the desired seed rows present in a live
table.  Seed rows are additive: a missing row is inserted, a row whose
non-key values differ is updated, and rows that exist live but are not in
the seed set are never touched.  No DELETE is ever planned.

Row identity:
- the declared primary key, when every key column appears in the seed row;
- otherwise every column of the seed row (a composite match key), in which
  case an existing match is by definition identical and nothing is planned.

Usage:
    from db_reconciler.schema.seed import plan_seed_rows

    statements = await plan_seed_rows(
        "users", spec.seed_data, ["id"], client, renderer
    )
"""

from typing import Any, Protocol

from db_reconciler.adapters.base import TargetClient
from db_reconciler.spec.models import SeedData

SeedKey = tuple[tuple[str, str], ...]


class SeedRenderer(Protocol):
    """Renders seed row changes as dialect-native DML."""

    def insert(self, table: str, row: dict[str, Any]) -> str:
        ...

    def insert_ignore(self, table: str, row: dict[str, Any]) -> str:
        ...

    def update(self, table: str, values: dict[str, Any], key: dict[str, Any]) -> str:
        ...

    def match_query(self, table: str, row: dict[str, Any]) -> str:
        """A query returning a row only if *table* holds every value of *row*."""
        ...


def sql_literal(value: Any, backslash_escapes: bool = False) -> str:
    """Render a seed value as a SQL literal.

    Examples:
        >>> sql_literal(1)
        '1'
        >>> sql_literal("it's")
        "'it''s'"
        >>> sql_literal(None)
        'NULL'
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value)
    if backslash_escapes:
        escaped = escaped.replace("\\", "\\\\")
    return "'" + escaped.replace("'", "''") + "'"


def seed_match_key(row: dict[str, Any], primary_key: list[str]) -> dict[str, Any]:
    """Columns identifying *row* in the live table."""
    if primary_key and all(k in row for k in primary_key):
        return {k: row[k] for k in primary_key}
    return dict(row)


def values_equal(desired: Any, live: Any) -> bool:
    """Compare a seed value with a live value on their text form."""
    if desired is None or live is None:
        return desired is None and live is None
    return str(desired) == str(live)


def _hashable(key: dict[str, Any]) -> SeedKey:
    return tuple(sorted((k, str(v)) for k, v in key.items()))


async def plan_seed_rows(
    table: str,
    seed_data: SeedData,
    primary_key: list[str],
    client: TargetClient,
    renderer: SeedRenderer,
) -> list[str]:
    """Plan INSERT/UPDATE statements converging *table* to the seed rows.

    Each row is looked up with a read-only ``select``.  Rows repeated in the
    seed set are compared against the state produced by earlier rows of the
    same plan, so a plan never inserts the same key twice.  A live row whose
    values differ from the seed row in text form only (``True`` against
    ``"true"``, ``Decimal("2.0")`` against ``"2.0"``) is checked again with
    ``match_query`` so the database compares in the column types, and is
    updated only when that query finds no row.

    Returns:
        Ordered statements; empty when every seed row is already present.
    """
    statements: list[str] = []
    planned: dict[SeedKey, dict[str, Any]] = {}

    for row in seed_data.rows:
        values = row.as_dict()
        if not values:
            continue

        key = seed_match_key(values, primary_key)
        hashed = _hashable(key)

        if hashed in planned:
            current: dict[str, Any] | None = planned[hashed]
            from_live = False
        else:
            matches = await client.select(table, list(values), key)
            current = matches[0] if matches else None
            from_live = True

        if current is None:
            statements.append(renderer.insert(table, values))
            planned[hashed] = dict(values)
            continue

        changed = {
            col: val
            for col, val in values.items()
            if col not in key and not values_equal(val, current.get(col))
        }
        if changed and from_live:
            # Text forms differ; let the database compare in the column types
            if await client.query(renderer.match_query(table, {**key, **changed})):
                changed = {}
        if changed:
            statements.append(renderer.update(table, changed, key))
        planned[hashed] = {**current, **values}

    return statements


def offline_seed_statements(
    table: str,
    seed_data: SeedData,
    renderer: SeedRenderer,
) -> list[str]:
    """Seed statements for a target whose rows cannot be inspected.

    Every row becomes an insert-or-ignore statement: rows already present
    are left as they are, never updated or deleted.
    """
    return [
        renderer.insert_ignore(table, row.as_dict())
        for row in seed_data.rows
        if row.columns
    ]
