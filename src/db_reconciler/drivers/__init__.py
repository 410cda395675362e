"""Driver registry.

Maps driver identifiers to driver classes.  The registry is a closed set:
``get_driver`` raises ``UnknownDriverError`` for anything else.

Usage:
    from db_reconciler.drivers import get_driver

    driver = get_driver("postgres", ConnectionParams(uri="postgres://..."))
"""

from db_reconciler.config.models import ConnectionParams
from db_reconciler.drivers.base import BaseDriver, DeployResult, Driver, SqlDriver
from db_reconciler.drivers.cassandra import CassandraDriver
from db_reconciler.drivers.cockroachdb import CockroachDBDriver
from db_reconciler.drivers.mysql import MySQLDriver
from db_reconciler.drivers.postgres import PostgresDriver
from db_reconciler.drivers.rqlite import RqliteDriver
from db_reconciler.drivers.sqlite import SqliteDriver
from db_reconciler.drivers.timescaledb import TimescaleDBDriver
from db_reconciler.errors import UnknownDriverError

DRIVERS: dict[str, type[BaseDriver]] = {
    driver.name: driver
    for driver in (
        PostgresDriver,
        CockroachDBDriver,
        TimescaleDBDriver,
        MySQLDriver,
        SqliteDriver,
        RqliteDriver,
        CassandraDriver,
    )
}


def available_drivers() -> list[str]:
    """Registered driver identifiers, in registration order."""
    return list(DRIVERS)


def get_driver_class(name: str) -> type[BaseDriver]:
    try:
        return DRIVERS[name]
    except KeyError:
        raise UnknownDriverError(name, available_drivers()) from None


def get_driver(
    name: str,
    connection: ConnectionParams | None = None,
    allow_column_drops: bool = False,
) -> BaseDriver:
    """Create a driver instance for *name*.

    Args:
        name: Driver identifier (``postgres``, ``mysql``, ...).
        connection: Target connection parameters; ``None`` for offline use.
        allow_column_drops: Let plans drop columns that left the table spec.

    Raises:
        UnknownDriverError: If *name* is not registered.
    """
    return get_driver_class(name)(connection, allow_column_drops=allow_column_drops)


__all__ = [
    "DRIVERS",
    "BaseDriver",
    "CassandraDriver",
    "CockroachDBDriver",
    "DeployResult",
    "Driver",
    "MySQLDriver",
    "PostgresDriver",
    "RqliteDriver",
    "SqlDriver",
    "SqliteDriver",
    "TimescaleDBDriver",
    "available_drivers",
    "get_driver",
    "get_driver_class",
]
