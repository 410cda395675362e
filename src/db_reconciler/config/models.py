"""Pydantic models for connection and profile configuration."""

from pathlib import Path
from urllib.parse import quote

from pydantic import BaseModel, Field


# ============================================================================
# Connection Parameters
# ============================================================================


class ConnectionParams(BaseModel):
    """Opaque connection parameters handed to a driver.

    SQL-like targets use ``uri``.  Cassandra uses ``hosts``, ``username``,
    ``password`` and ``keyspace``.  The engine never interprets them beyond
    passing them to the driver's target client.
    """

    uri: str = ""
    hosts: list[str] = Field(default_factory=list)
    username: str = ""
    password: str = ""
    keyspace: str = ""


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    driver: str = "postgres"
    uri: str = ""
    hosts: list[str] = Field(default_factory=list)
    username: str = ""
    password: str = ""
    keyspace: str = ""
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    deploy_seed_data: bool = False
    allow_column_drops: bool = False


class FixtureSettings(BaseModel):
    """Default directories for fixture generation."""

    input_dir: Path | None = None
    output_dir: Path | None = None


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    fixtures: FixtureSettings = Field(default_factory=FixtureSettings)


def resolve_connection(profile: DatabaseProfile) -> ConnectionParams:
    """Build connection parameters with password substitution.

    A ``[YOUR-PASSWORD]`` placeholder in the URI is replaced by the
    URL-quoted ``db_password``.

    Example:
        >>> p = DatabaseProfile(uri="postgres://u:[YOUR-PASSWORD]@h/db", db_password="p@ss")
        >>> resolve_connection(p).uri
        'postgres://u:p%40ss@h/db'
    """
    uri = profile.uri
    if profile.db_password and "[YOUR-PASSWORD]" in uri:
        uri = uri.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return ConnectionParams(
        uri=uri,
        hosts=list(profile.hosts),
        username=profile.username,
        password=profile.password or profile.db_password or "",
        keyspace=profile.keyspace,
    )
