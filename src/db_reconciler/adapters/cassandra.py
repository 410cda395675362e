"""Async Cassandra target adapter.

Wraps the DataStax ``cassandra-driver`` session.  The driver API is
blocking, so every call runs in a worker thread via ``asyncio.to_thread``.
The cluster connection is opened lazily on first use, guarded by an
``asyncio.Lock``.

Cassandra has no transactional DDL: ``execute_transaction`` raises
``NotImplementedError`` and drivers apply statements one at a time.

Usage:
    from db_reconciler.adapters.cassandra import CassandraTarget

    target = CassandraTarget(["10.0.0.1"], "cassandra", "cassandra", "app")
    rows = await target.query(
        "SELECT column_name FROM system_schema.columns WHERE keyspace_name = %s",
        ("app",),
    )
    await target.close()
"""

import asyncio
from typing import Any

from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, NoHostAvailable, Session
from cassandra.query import dict_factory

from db_reconciler.errors import ConnectivityError


class CassandraTarget:
    """Cassandra implementation of the ``TargetClient`` protocol.

    Args:
        hosts: Contact points.
        username: Login name (empty for no authentication).
        password: Login password.
        keyspace: Keyspace every statement runs in.
    """

    def __init__(self, hosts: list[str], username: str, password: str, keyspace: str) -> None:
        self.keyspace = keyspace
        self._hosts = list(hosts)
        self._username = username
        self._password = password
        self._cluster: Cluster | None = None
        self._session: Session | None = None
        self._lock = asyncio.Lock()

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def _open(self) -> Session:
        auth = None
        if self._username:
            auth = PlainTextAuthProvider(username=self._username, password=self._password)
        cluster = Cluster(contact_points=self._hosts, auth_provider=auth)
        try:
            session = cluster.connect(self.keyspace or None)
        except NoHostAvailable:
            cluster.shutdown()
            raise
        session.row_factory = dict_factory
        self._cluster = cluster
        return session

    async def _get_session(self) -> Session:
        if self._session is None:
            async with self._lock:
                # Double-check after acquiring lock
                if self._session is None:
                    try:
                        self._session = await asyncio.to_thread(self._open)
                    except (NoHostAvailable, OSError) as e:
                        raise ConnectivityError(
                            f"failed to connect to cassandra hosts "
                            f"{', '.join(self._hosts)}: {e}",
                            driver="cassandra",
                        ) from e
        return self._session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(self, sql: str, params: Any = None) -> list[dict]:
        """Run a CQL query with positional (``%s``) parameters."""
        session = await self._get_session()
        result = await asyncio.to_thread(session.execute, sql, params)
        return [dict(row) for row in result]

    async def select(
        self,
        table: str,
        columns: list[str],
        filters: dict[str, Any] | None = None,
    ) -> list[dict]:
        where_clause = ""
        values: list[Any] = []
        if filters:
            where_clause = " WHERE " + " AND ".join(f"{self.quote(k)} = %s" for k in filters)
            values = list(filters.values())
        column_list = ", ".join(self.quote(c) for c in columns)
        return await self.query(
            f"SELECT {column_list} FROM {self.quote(self.keyspace)}.{self.quote(table)}{where_clause}",
            values or None,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def execute(self, sql: str) -> None:
        session = await self._get_session()
        await asyncio.to_thread(session.execute, sql)

    async def execute_transaction(self, statements: list[str]) -> None:
        raise NotImplementedError("Cassandra does not support transactional DDL")

    async def close(self) -> None:
        if self._cluster is not None:
            await asyncio.to_thread(self._cluster.shutdown)
            self._cluster = None
            self._session = None
