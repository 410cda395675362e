"""Phase observers for reconciliation calls.

Each orchestrator operation reports ``phase_started`` / ``phase_finished`` /
``phase_failed`` events to an observer passed in by the caller.  There is no
process-wide observer; a caller that wants no reporting passes
``NullObserver()``.

Usage:
    from db_reconciler.observer import LoggingObserver

    db = Database("postgres", connection, observer=LoggingObserver())
"""

import logging
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ReconcileObserver(Protocol):
    """Receives lifecycle events for one reconciliation call."""

    def phase_started(self, phase: str, **context: Any) -> None:
        ...

    def phase_finished(self, phase: str, **context: Any) -> None:
        ...

    def phase_failed(self, phase: str, error: BaseException, **context: Any) -> None:
        ...


class NullObserver:
    """Observer that ignores every event."""

    def phase_started(self, phase: str, **context: Any) -> None:
        pass

    def phase_finished(self, phase: str, **context: Any) -> None:
        pass

    def phase_failed(self, phase: str, error: BaseException, **context: Any) -> None:
        pass


class LoggingObserver:
    """Observer that writes phase events to a ``logging`` logger.

    Durations are measured between ``phase_started`` and the matching
    finish/fail event for the same phase name.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._started: dict[str, float] = {}

    def phase_started(self, phase: str, **context: Any) -> None:
        self._started[phase] = time.monotonic()
        self._log.debug(f"[{phase}] start {_format(context)}")

    def phase_finished(self, phase: str, **context: Any) -> None:
        elapsed = self._elapsed(phase)
        self._log.info(f"[{phase}] done in {elapsed:.3f}s {_format(context)}")

    def phase_failed(self, phase: str, error: BaseException, **context: Any) -> None:
        elapsed = self._elapsed(phase)
        self._log.warning(
            f"[{phase}] failed after {elapsed:.3f}s: {error} {_format(context)}"
        )

    def _elapsed(self, phase: str) -> float:
        started = self._started.pop(phase, None)
        return time.monotonic() - started if started is not None else 0.0


class RecordingObserver:
    """Observer that keeps events in memory, in order.

    Each event is a tuple ``(kind, phase, context)`` where ``kind`` is
    ``"started"``, ``"finished"`` or ``"failed"``.
    """

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def phase_started(self, phase: str, **context: Any) -> None:
        self.events.append(("started", phase, context))

    def phase_finished(self, phase: str, **context: Any) -> None:
        self.events.append(("finished", phase, context))

    def phase_failed(self, phase: str, error: BaseException, **context: Any) -> None:
        self.events.append(("failed", phase, {**context, "error": error}))


def _format(context: dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in context.items() if v is not None)
