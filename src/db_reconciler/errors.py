"""Error taxonomy for schema reconciliation.

Every error raised by the engine derives from ``ReconcileError`` and carries
optional context about where it happened: the table (or type) name, the
driver identifier, and the lifecycle phase (``load``, ``plan``, ``seed``,
``type``, ``deploy``, ``fixtures``).

Categories:
- ``ConfigurationError``: unknown driver, missing schema block for the
  configured driver.  Raised before any I/O.
- ``SpecError``: malformed spec file or structurally invalid schema.
- ``ConnectivityError``: the live target could not be reached.
- ``PlanningError``: the desired state cannot be reached by a safe plan.
- ``DeployError`` / ``PartialApplyError``: statement application failed,
  with the number of statements that were committed.
- ``UnsupportedOperationError``: seed or type planning requested on a
  driver that cannot do it.

Usage:
    from db_reconciler.errors import PartialApplyError

    try:
        await db.apply_sync(statements)
    except PartialApplyError as e:
        print(f"{e.applied} of {e.total} applied")
"""


class ReconcileError(Exception):
    """Base class for all reconciliation errors."""

    def __init__(
        self,
        message: str,
        *,
        table: str | None = None,
        driver: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.table = table
        self.driver = driver
        self.phase = phase

    def with_context(
        self,
        table: str | None = None,
        driver: str | None = None,
        phase: str | None = None,
    ) -> "ReconcileError":
        """Fill in context fields that are not already set and return self."""
        if self.table is None:
            self.table = table
        if self.driver is None:
            self.driver = driver
        if self.phase is None:
            self.phase = phase
        return self

    def __str__(self) -> str:
        context = []
        if self.driver:
            context.append(f"driver={self.driver}")
        if self.table:
            context.append(f"table={self.table}")
        if self.phase:
            context.append(f"phase={self.phase}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


# ============================================================================
# Configuration errors (fail fast, before I/O)
# ============================================================================


class ConfigurationError(ReconcileError):
    """The engine is misconfigured for the requested operation."""


class UnknownDriverError(ConfigurationError):
    """Raised when a driver identifier is not in the registry."""

    def __init__(self, driver: str, available: list[str]) -> None:
        super().__init__(
            f"unknown database driver: {driver!r} "
            f"(available: {', '.join(available)})",
            driver=driver,
        )
        self.available = available


class UnsupportedDialectError(ConfigurationError):
    """Raised when a spec has no schema block for the configured driver."""


# ============================================================================
# Input errors
# ============================================================================


class SpecError(ReconcileError):
    """The desired specification is malformed or invalid."""


class SpecParseError(SpecError):
    """A spec document could not be decoded into a spec value."""


class InvalidSchemaError(SpecError):
    """A schema is structurally invalid (e.g. it declares no columns)."""


# ============================================================================
# Runtime errors
# ============================================================================


class ConnectivityError(ReconcileError):
    """The live target is unreachable."""


class PlanningError(ReconcileError):
    """The diff between desired and live state cannot be planned safely."""


class DeployError(ReconcileError):
    """Applying a plan failed and no statement was committed."""

    def __init__(
        self,
        message: str,
        *,
        applied: int = 0,
        total: int = 0,
        statement: str | None = None,
        **context: str | None,
    ) -> None:
        super().__init__(message, **context)
        self.applied = applied
        self.total = total
        self.statement = statement


class PartialApplyError(DeployError):
    """A non-transactional deploy failed after some statements committed.

    The target is left in an intermediate state: ``applied`` of ``total``
    statements took effect, ``statement`` is the one that failed.
    """

    def __init__(
        self,
        applied: int,
        total: int,
        statement: str,
        cause: BaseException,
        **context: str | None,
    ) -> None:
        super().__init__(
            f"{applied} of {total} statements applied before failure: {cause}",
            applied=applied,
            total=total,
            statement=statement,
            **context,
        )


class UnsupportedOperationError(ReconcileError):
    """The driver does not support the requested operation."""
