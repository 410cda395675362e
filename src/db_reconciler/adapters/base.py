"""Target client protocol definition.

Defines the ``TargetClient`` Protocol that every live-target adapter must
implement.  All methods are ``async def``.  Drivers use a target client for
three things only: read-only introspection queries, seed-row lookups, and
statement application.

Usage:
    from db_reconciler.adapters.base import TargetClient

    async def apply(client: TargetClient, statements: list[str]) -> None:
        await client.execute_transaction(statements)
        await client.close()
"""

from typing import Any, Protocol


class TargetClient(Protocol):
    """Live-target interface that all adapters must implement.

    Adapters raise ``ConnectivityError`` when the target cannot be reached
    and let statement failures propagate as the backend's own exception.
    """

    async def select(
        self,
        table: str,
        columns: list[str],
        filters: dict[str, Any] | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name (quoted by the adapter).
            columns: Column names to return.
            filters: Optional dict of column=value filters (all must match).

        Returns:
            List of dicts, one per row.  Empty list if no matches.

        Example:
            rows = await client.select("users", ["id", "name"], {"id": 1})
        """
        ...

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Run a read-only query and return rows as dicts.

        Used by introspection.  Parameter style is adapter specific.
        """
        ...

    async def execute(self, sql: str) -> None:
        """Execute one statement in its own unit of work.

        Args:
            sql: Dialect-native DDL or DML statement.

        Example:
            await client.execute('alter table "users" add column "age" integer')
        """
        ...

    async def execute_transaction(self, statements: list[str]) -> None:
        """Execute all statements atomically, in order.

        Raises:
            NotImplementedError: If the target cannot run DDL transactionally.
        """
        ...

    async def close(self) -> None:
        """Close connections and release resources."""
        ...
