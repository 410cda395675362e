"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_reconciler.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from db_reconciler.config.loader import get_active_profile_name, load_db_config
from db_reconciler.config.models import (
    ConnectionParams,
    DatabaseConfig,
    DatabaseProfile,
    FixtureSettings,
    resolve_connection,
)

__all__ = [
    "load_db_config",
    "get_active_profile_name",
    "ConnectionParams",
    "DatabaseConfig",
    "DatabaseProfile",
    "FixtureSettings",
    "resolve_connection",
]
