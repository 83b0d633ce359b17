"""Halt guard: suspends unlocking after an unrecoverable error.

State machine ``running -> halted(reason) -> running`` where the only way
back to running is an explicit ``resume()``. Transient failures are counted
and only halt once ``max_transient_failures`` consecutive sweeps failed.
"""

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from blockunlocker.exceptions import UnlockerError
from blockunlocker.storage.state import (
    UnlockerState,
    UnlockerStatus,
    load_status,
    save_status,
)

logger = logging.getLogger(__name__)


class HaltGuard:
    def __init__(self, state_path: Path | None = None, max_transient_failures: int = 3):
        self.state_path = state_path
        self.max_transient_failures = max_transient_failures
        self._lock = threading.Lock()
        self._status = load_status(state_path) if state_path else UnlockerStatus()

    def _persist(self) -> None:
        if self.state_path is not None:
            save_status(self._status, self.state_path)

    def refresh(self) -> None:
        """Reload persisted state, picking up a resume issued by another process.

        A halt held in memory is only cleared by a persisted resume that is
        newer than the halt, so a halt that failed to save is never undone.
        """
        if self.state_path is None:
            return
        with self._lock:
            persisted = load_status(self.state_path)
            if self._status.halted and not persisted.halted and not _resumed_since(
                persisted, self._status
            ):
                logger.warning(
                    f"Persisted state {self.state_path} predates the current halt, staying halted"
                )
                return
            self._status = persisted

    def status(self) -> UnlockerStatus:
        with self._lock:
            return self._status.model_copy()

    @property
    def halted(self) -> bool:
        with self._lock:
            return self._status.halted

    def halt(self, error: BaseException, context: str) -> None:
        with self._lock:
            self._status = UnlockerStatus(
                state=UnlockerState.HALTED,
                reason=str(error),
                error_type=type(error).__name__,
                context=context,
                halted_at=datetime.now(timezone.utc),
                consecutive_transient_failures=self._status.consecutive_transient_failures,
            )
            self._persist()
        logger.critical(f"Unlocking halted ({context}): {error}")

    def record_failure(self, error: UnlockerError, context: str) -> bool:
        """Record a failed sweep. Returns True if the guard is now halted."""
        if not error.transient:
            self.halt(error, context)
            return True

        with self._lock:
            self._status.consecutive_transient_failures += 1
            failures = self._status.consecutive_transient_failures
            self._persist()

        if failures >= self.max_transient_failures:
            self.halt(error, f"{context} ({failures} consecutive transient failures)")
            return True

        logger.warning(
            f"Transient failure {failures}/{self.max_transient_failures} ({context}): {error}"
        )
        return False

    def record_success(self) -> None:
        with self._lock:
            if self._status.consecutive_transient_failures:
                self._status.consecutive_transient_failures = 0
                self._persist()

    def resume(self) -> bool:
        """Clear a halted state. Returns False if the guard was not halted."""
        with self._lock:
            if not self._status.halted:
                return False
            previous = self._status.reason
            self._status = UnlockerStatus(resumed_at=datetime.now(timezone.utc))
            self._persist()
        logger.info(f"Unlocking resumed (last error: {previous})")
        return True


def _resumed_since(persisted: UnlockerStatus, current: UnlockerStatus) -> bool:
    if persisted.resumed_at is None:
        return False
    if current.halted_at is None:
        return True
    return persisted.resumed_at > current.halted_at
