import threading
from enum import Enum
from pathlib import Path


class Wake(Enum):
    CHANGED = "changed"
    TERMINATE = "terminate"
    FAILED = "failed"


class WatchContext:
    """State shared by the store watcher and the lifecycle controller.

    Holds the store path, a single pending change flag (a queue of capacity
    one, further signals coalesce into it), the cancellation request and
    the fatal error of the watcher, if any. All of it is guarded by one
    condition so the controller can block on whichever happens first.
    """

    def __init__(self, store_path: Path) -> None:
        self.store_path = store_path
        self._cond = threading.Condition(threading.RLock())
        self._pending = False
        self._cancelled = False
        self._watching = False
        self._error: BaseException | None = None

    @property
    def cancelled(self) -> bool:
        with self._cond:
            return self._cancelled

    @property
    def watching(self) -> bool:
        with self._cond:
            return self._watching

    @property
    def error(self) -> BaseException | None:
        with self._cond:
            return self._error

    def mark_watching(self) -> None:
        """Record that the store exists and writes to it are being observed."""
        with self._cond:
            self._watching = True

    def notify_change(self) -> bool:
        """Record a change signal. Returns False when it was coalesced into
        an already pending one or the context is cancelled."""
        with self._cond:
            if self._cancelled or self._pending:
                return False
            self._pending = True
            self._cond.notify_all()
            return True

    def cancel(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def fail(self, error: BaseException) -> None:
        with self._cond:
            if self._error is None:
                self._error = error
            self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> Wake | None:
        """Block until a change is pending, cancellation was requested or the
        watcher failed. Cancellation wins over a pending change. Consumes
        the pending change. Returns None on timeout."""
        with self._cond:
            ready = self._cond.wait_for(
                lambda: self._cancelled or self._error is not None or self._pending,
                timeout=timeout
            )
            if not ready:
                return None
            if self._cancelled:
                return Wake.TERMINATE
            if self._error is not None:
                return Wake.FAILED
            self._pending = False
            return Wake.CHANGED

    def wait_cancelled(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._cancelled, timeout=timeout)
