"""db-reconciler: Declarative multi-dialect database schema reconciliation.

Given a desired table (or type) spec and a target database, plans the
ordered statements that converge the live database to the table spec and applies
them, across Postgres, CockroachDB, TimescaleDB, MySQL, SQLite, rqlite and
Cassandra.

Usage:
    from db_reconciler import Database, ConnectionParams, load_table_spec
    from db_reconciler import get_driver, generate_fixtures
    from db_reconciler import ReconcileError, PartialApplyError
"""

__version__ = "0.1.0"

# Config
from db_reconciler.config.loader import get_active_profile_name, load_db_config
from db_reconciler.config.models import (
    ConnectionParams,
    DatabaseConfig,
    DatabaseProfile,
    resolve_connection,
)

# Orchestrator
from db_reconciler.database import Database, ReconcileResult, ReconcileState

# Drivers
from db_reconciler.drivers import available_drivers, get_driver
from db_reconciler.drivers.base import DeployResult, Driver

# Errors
from db_reconciler.errors import (
    ConfigurationError,
    ConnectivityError,
    DeployError,
    InvalidSchemaError,
    PartialApplyError,
    PlanningError,
    ReconcileError,
    SpecError,
    SpecParseError,
    UnknownDriverError,
    UnsupportedDialectError,
    UnsupportedOperationError,
)

# Fixtures
from db_reconciler.fixtures import generate_fixtures

# Observers
from db_reconciler.observer import (
    LoggingObserver,
    NullObserver,
    ReconcileObserver,
    RecordingObserver,
)

# Specs
from db_reconciler.spec.loader import load_table_spec, load_type_spec
from db_reconciler.spec.models import DataTypeSpec, TableSpec

__all__ = [
    # Config
    "load_db_config",
    "get_active_profile_name",
    "ConnectionParams",
    "DatabaseConfig",
    "DatabaseProfile",
    "resolve_connection",
    # Orchestrator
    "Database",
    "ReconcileResult",
    "ReconcileState",
    # Drivers
    "Driver",
    "DeployResult",
    "available_drivers",
    "get_driver",
    # Errors
    "ReconcileError",
    "ConfigurationError",
    "UnknownDriverError",
    "UnsupportedDialectError",
    "SpecError",
    "SpecParseError",
    "InvalidSchemaError",
    "ConnectivityError",
    "PlanningError",
    "DeployError",
    "PartialApplyError",
    "UnsupportedOperationError",
    # Fixtures
    "generate_fixtures",
    # Observers
    "ReconcileObserver",
    "LoggingObserver",
    "NullObserver",
    "RecordingObserver",
    # Specs
    "TableSpec",
    "DataTypeSpec",
    "load_table_spec",
    "load_type_spec",
]
