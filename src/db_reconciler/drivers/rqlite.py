"""rqlite driver.

rqlite is replicated SQLite behind an HTTP API, so planning and rendering
are SQLite's (including table rebuilds).  Statements travel through
``RqliteTarget``; a plan is sent as one ``/db/execute?transaction`` request
and is applied atomically.
"""

from typing import ClassVar

from db_reconciler.adapters.base import TargetClient
from db_reconciler.drivers.sqlite import SqliteDriver


class RqliteDriver(SqliteDriver):
    """Driver for rqlite clusters."""

    name: ClassVar[str] = "rqlite"
    transactional_ddl: ClassVar[bool] = True

    def _create_client(self) -> TargetClient:
        from db_reconciler.adapters.rqlite import RqliteTarget

        return RqliteTarget(self.require_connection().uri)
