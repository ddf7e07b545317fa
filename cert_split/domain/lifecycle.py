import signal
import logging
from enum import Enum
from datetime import datetime
from typing import Callable, Protocol
from cert_split.domain.bundle import BundleSplitter, SplitResult
from cert_split.domain.post_hook import PostHook
from cert_split.domain.watch_context import WatchContext, Wake
from cert_split.errors.split_error import SplitError
from cert_split.utils import get_cert_expire_date

log = logging.getLogger(__name__)

DATE_FMT = "%Y-%m-%d %H:%M"


class ExitCode(Enum):
    OK = 0
    FAILURE = 1


class LifecycleState(Enum):
    IDLE = "idle"
    WAITING_FOR_STORE = "waiting for store"
    WATCHING = "watching"
    SPLITTING = "splitting"
    TERMINATED = "terminated"


class Watcher(Protocol):
    def start(self) -> None: ...
    def join(self, timeout: float | None = None) -> None: ...


class LifecycleController:
    """Consumes change signals and re-splits the store on each of them.

    One-shot mode stops after the first split, daemon mode keeps going until
    termination is requested. A failed split or a failed watcher ends the
    run with ``ExitCode.FAILURE``.
    """

    def __init__(
        self,
        context: WatchContext,
        watcher: Watcher,
        splitter: BundleSplitter | None = None,
        *,
        daemon: bool = False,
        post_hook: PostHook | None = None,
        join_timeout: float = 10.0
    ) -> None:
        self.context = context
        self.watcher = watcher
        self.splitter = splitter or BundleSplitter()
        self.daemon = daemon
        self.post_hook = post_hook
        self.join_timeout = join_timeout
        self._state = LifecycleState.IDLE
        self.splits = 0

    @property
    def state(self) -> LifecycleState:
        if self._state is LifecycleState.IDLE and self.context.cancelled:
            return LifecycleState.TERMINATED
        if self._state is LifecycleState.WAITING_FOR_STORE and self.context.watching:
            return LifecycleState.WATCHING
        return self._state

    def run(self) -> ExitCode:
        log.info(f"Starting in {'daemon' if self.daemon else 'one-shot'} mode for '{self.context.store_path}'")
        self._state = LifecycleState.WAITING_FOR_STORE
        self.watcher.start()

        try:
            while True:
                wake = self.context.wait()

                if wake is Wake.TERMINATE:
                    log.info("Received signal to quit")
                    return ExitCode.OK

                if wake is Wake.FAILED:
                    log.error(f"Cannot watch certificate store: {self.context.error}")
                    return ExitCode.FAILURE

                self._state = LifecycleState.SPLITTING
                try:
                    result = self.splitter.split(self.context.store_path)
                except SplitError as e:
                    log.error(f"{type(e).__name__}: {e}")
                    return ExitCode.FAILURE

                self.splits += 1
                self._after_split(result)

                if not self.daemon:
                    return ExitCode.OK
                self._state = LifecycleState.WATCHING
        finally:
            self.context.cancel()
            self.watcher.join(self.join_timeout)
            self._state = LifecycleState.TERMINATED

    def request_termination(self) -> None:
        self.context.cancel()

    def _after_split(self, result: SplitResult) -> None:
        try:
            expire_date = get_cert_expire_date(result.paths.cert)
            log.info(f"Certificate '{result.paths.cert}' expires {datetime.strftime(expire_date, DATE_FMT)} UTC")
        except (OSError, ValueError) as e:
            log.warning(f"Cannot read expiration date of '{result.paths.cert}': {e}")

        if self.post_hook:
            self.post_hook.run(result)


def install_signal_handlers(
    controller: LifecycleController,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)
) -> Callable[[], None]:
    """Route termination signals to the controller. Returns a callable that
    restores the previous handlers. Must be called from the main thread."""
    previous = {}

    def _handler(signum: int, _frame) -> None:
        log.info(f"Received {signal.Signals(signum).name}")
        controller.request_termination()

    for sig in signals:
        previous[sig] = signal.signal(sig, _handler)

    def _restore() -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return _restore
