"""Reconciliation orchestrator.

``Database`` binds one driver to one target and runs the reconciliation
lifecycle for table, seed-data and type specs:

    IDLE -> LOADED -> PLANNED -> APPLIED | DISCARDED   (or FAILED)

Nothing is persisted between calls; every call re-reads the live state.
Planning and applying are separate calls so a plan can be previewed,
inspected, and then applied (or dropped).  No lock is held between plan
and apply: a concurrent change to the target in between is not detected.

Usage:
    from db_reconciler.config import ConnectionParams
    from db_reconciler.database import Database
    from db_reconciler.spec import load_table_spec

    async with Database("postgres", ConnectionParams(uri=url)) as db:
        spec = load_table_spec(Path("users.yaml"))
        statements = await db.plan_sync_table_spec(spec)
        await db.apply_sync(statements)
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from db_reconciler.config.models import (
    ConnectionParams,
    DatabaseProfile,
    FixtureSettings,
    resolve_connection,
)
from db_reconciler.drivers import get_driver
from db_reconciler.drivers.base import DeployResult
from db_reconciler.errors import (
    ConfigurationError,
    ReconcileError,
    SpecError,
    UnsupportedOperationError,
)
from db_reconciler.fixtures import generate_fixtures
from db_reconciler.observer import LoggingObserver, ReconcileObserver
from db_reconciler.spec.loader import load_table_spec, load_type_spec
from db_reconciler.spec.models import DataTypeSpec, TableSpec

logger = logging.getLogger(__name__)


class ReconcileState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    PLANNED = "planned"
    APPLIED = "applied"
    DISCARDED = "discarded"
    FAILED = "failed"


class ReconcileResult(BaseModel):
    """Outcome of one ``reconcile_*`` call."""

    kind: str  # "table" or "seed"
    table: str
    driver: str
    state: ReconcileState
    history: list[ReconcileState] = Field(default_factory=list)
    statements: list[str] = Field(default_factory=list)
    deploy: DeployResult | None = None

    @property
    def converged(self) -> bool:
        """True if the plan was empty (the target already matched)."""
        return not self.statements


class Database:
    """Plans and applies specs against one target through one driver.

    Args:
        driver: Driver identifier; resolved immediately.
        connection: Target connection parameters.  May be omitted when only
            fixtures are generated.
        deploy_seed_data: Include seed rows when planning table specs.
        allow_column_drops: Let plans drop columns that left the table spec.
        input_dir: Spec directory for ``create_fixtures``.
        output_dir: Output directory for ``create_fixtures``.
        observer: Receives phase events; defaults to a ``LoggingObserver``.

    Raises:
        UnknownDriverError: If *driver* is not registered.
    """

    def __init__(
        self,
        driver: str,
        connection: ConnectionParams | None = None,
        deploy_seed_data: bool = False,
        allow_column_drops: bool = False,
        input_dir: Path | None = None,
        output_dir: Path | None = None,
        observer: ReconcileObserver | None = None,
    ) -> None:
        self.driver_name = driver
        self.driver = get_driver(driver, connection, allow_column_drops=allow_column_drops)
        self.deploy_seed_data = deploy_seed_data
        self.input_dir = input_dir
        self.output_dir = output_dir
        self.observer: ReconcileObserver = observer or LoggingObserver()

    @classmethod
    def from_profile(
        cls,
        profile: DatabaseProfile,
        fixtures: FixtureSettings | None = None,
        observer: ReconcileObserver | None = None,
    ) -> "Database":
        """Build a ``Database`` from a db.toml profile."""
        fixtures = fixtures or FixtureSettings()
        return cls(
            profile.driver,
            resolve_connection(profile),
            deploy_seed_data=profile.deploy_seed_data,
            allow_column_drops=profile.allow_column_drops,
            input_dir=fixtures.input_dir,
            output_dir=fixtures.output_dir,
            observer=observer,
        )

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the driver's connection to the target."""
        await self.driver.close()

    # ------------------------------------------------------------------
    # Phase bookkeeping
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _phase(
        self, phase: str, table: str | None = None, **context: Any
    ) -> AsyncIterator[None]:
        """Report *phase* to the observer and attach context to errors.

        ``ReconcileError`` gets table/driver/phase filled in;
        ``NotImplementedError`` from a target becomes
        ``UnsupportedOperationError``; any other exception is wrapped in a
        ``ReconcileError`` chained to the original.
        """
        ctx = {"driver": self.driver_name, "table": table, **context}
        self.observer.phase_started(phase, **ctx)
        try:
            yield
        except ReconcileError as e:
            e.with_context(table=table, driver=self.driver_name, phase=phase)
            self.observer.phase_failed(phase, e, **ctx)
            raise
        except NotImplementedError as e:
            error = UnsupportedOperationError(
                str(e) or f"{phase} is not supported",
                table=table,
                driver=self.driver_name,
                phase=phase,
            )
            self.observer.phase_failed(phase, error, **ctx)
            raise error from e
        except asyncio.CancelledError as e:
            self.observer.phase_failed(phase, e, **ctx)
            raise
        except Exception as e:
            error = ReconcileError(
                f"{phase} failed: {e}", table=table, driver=self.driver_name, phase=phase
            )
            self.observer.phase_failed(phase, error, **ctx)
            raise error from e
        else:
            self.observer.phase_finished(phase, **ctx)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def plan_sync_table_spec(self, spec: TableSpec) -> list[str]:
        """Plan the statements converging the table described by *spec*.

        The schema block for the configured driver is resolved before any
        I/O.  Seed rows are included only when ``deploy_seed_data`` is set
        and the table needs no structural change.

        Raises:
            UnsupportedDialectError: If the spec has no block for the driver.
            InvalidSchemaError: If the schema is structurally invalid.
            ConnectivityError: If the target cannot be reached.
        """
        async with self._phase("plan", spec.name):
            schema = spec.schema_for(self.driver_name)
            seed_data = spec.seed_data if self.deploy_seed_data else None
            statements = await self.driver.plan_table(spec.name, schema, seed_data)
        logger.debug(f"planned {len(statements)} statements for {spec.name}")
        return statements

    async def plan_sync_seed_data(self, spec: TableSpec) -> list[str]:
        """Plan INSERT/UPDATE statements for the seed rows of *spec*.

        Raises:
            UnsupportedOperationError: If the driver has no seed support.
        """
        async with self._phase("seed", spec.name):
            if not self.driver.supports_seed_data:
                raise UnsupportedOperationError(
                    f"seed data is not supported for driver {self.driver_name!r}"
                )
            schema = spec.schema_for(self.driver_name)
            if spec.seed_data is None or not spec.seed_data.rows:
                return []
            return await self.driver.plan_seed_data(spec.name, schema, spec.seed_data)

    async def plan_sync_type_spec(self, spec: DataTypeSpec) -> list[str]:
        """Plan the statements converging a user-defined type.

        Raises:
            UnsupportedOperationError: If the driver has no type support.
        """
        async with self._phase("type", spec.name):
            if not self.driver.supports_types:
                raise UnsupportedOperationError(
                    f"planning types is not supported for driver {self.driver_name!r}"
                )
            schema = spec.schema_for(self.driver_name)
            return await self.driver.plan_type(spec.name, schema)

    async def plan_sync_from_file(self, path: Path, spec_type: str = "table") -> list[str]:
        """Load a spec file and plan it.

        Args:
            path: YAML spec (envelope or bare form).
            spec_type: ``"table"`` or ``"type"``.
        """
        async with self._phase("load", None, path=str(path)):
            if spec_type == "table":
                spec: TableSpec | DataTypeSpec = load_table_spec(Path(path))
            elif spec_type == "type":
                spec = load_type_spec(Path(path))
            else:
                raise SpecError(f"unknown spec type {spec_type!r}")

        if isinstance(spec, DataTypeSpec):
            return await self.plan_sync_type_spec(spec)
        return await self.plan_sync_table_spec(spec)

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    async def apply_sync(self, statements: list[str], table: str | None = None) -> DeployResult:
        """Apply a previously planned statement list.

        Args:
            statements: Statements returned by a ``plan_sync_*`` call.
            table: Table the statements belong to, attached to errors.

        Raises:
            DeployError: Nothing was applied.
            PartialApplyError: Some statements were applied before a failure
                (non-transactional drivers only).
        """
        async with self._phase("deploy", table, statements=len(statements)):
            result = await self.driver.deploy_statements(statements)
        if result.total:
            logger.info(f"{self.driver_name}: applied {result.applied} of {result.total} statements")
        return result

    # ------------------------------------------------------------------
    # Full lifecycle
    # ------------------------------------------------------------------

    async def _reconcile(
        self,
        kind: str,
        spec: TableSpec,
        plan: Callable[[TableSpec], Awaitable[list[str]]],
        preview: bool,
    ) -> ReconcileResult:
        history = [ReconcileState.IDLE]
        try:
            # Fail fast on a missing schema block, before any I/O
            async with self._phase("load", spec.name):
                spec.schema_for(self.driver_name)
            history.append(ReconcileState.LOADED)

            statements = await plan(spec)
            history.append(ReconcileState.PLANNED)

            deploy = None
            if preview:
                history.append(ReconcileState.DISCARDED)
            else:
                deploy = await self.apply_sync(statements, table=spec.name)
                history.append(ReconcileState.APPLIED)
        except ReconcileError:
            # The failing phase has already been reported to the observer
            history.append(ReconcileState.FAILED)
            logger.debug(
                f"{kind} {spec.name}: {' -> '.join(s.value for s in history)}"
            )
            raise

        return ReconcileResult(
            kind=kind,
            table=spec.name,
            driver=self.driver_name,
            state=history[-1],
            history=history,
            statements=statements,
            deploy=deploy,
        )

    async def reconcile_table(self, spec: TableSpec, preview: bool = False) -> ReconcileResult:
        """Plan and (unless *preview*) apply the structure of *spec*."""
        return await self._reconcile("table", spec, self.plan_sync_table_spec, preview)

    async def reconcile_seed_data(self, spec: TableSpec, preview: bool = False) -> ReconcileResult:
        """Plan and (unless *preview*) apply the seed rows of *spec*.

        Run after ``reconcile_table`` so the table exists in its final shape.
        """
        return await self._reconcile("seed", spec, self.plan_sync_seed_data, preview)

    # ------------------------------------------------------------------
    # Fixtures
    # ------------------------------------------------------------------

    def create_fixtures(self, include_seed_data: bool = False) -> Path:
        """Write ``fixtures.sql`` for every spec under ``input_dir``.

        Raises:
            ConfigurationError: If ``input_dir`` or ``output_dir`` is unset.
        """
        if self.input_dir is None or self.output_dir is None:
            raise ConfigurationError(
                "input_dir and output_dir are required to generate fixtures",
                driver=self.driver_name,
                phase="fixtures",
            )
        self.observer.phase_started("fixtures", driver=self.driver_name)
        try:
            path = generate_fixtures(
                self.input_dir, self.output_dir, self.driver_name, include_seed_data
            )
        except ReconcileError as e:
            e.with_context(driver=self.driver_name, phase="fixtures")
            self.observer.phase_failed("fixtures", e, driver=self.driver_name)
            raise
        self.observer.phase_finished("fixtures", driver=self.driver_name, path=str(path))
        return path
