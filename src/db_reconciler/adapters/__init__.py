"""Live-target adapters package.

Provides the ``TargetClient`` Protocol and the concrete async adapters used
by drivers to introspect and apply statements.

``AsyncSqlTarget`` covers the SQLAlchemy-backed drivers.  ``RqliteTarget``
and ``CassandraTarget`` are imported lazily by their drivers so that a
missing optional client library only affects that driver.

Usage:
    from db_reconciler.adapters import TargetClient, AsyncSqlTarget
"""

from db_reconciler.adapters.base import TargetClient
from db_reconciler.adapters.sql import AsyncSqlTarget

__all__ = [
    "TargetClient",
    "AsyncSqlTarget",
]
