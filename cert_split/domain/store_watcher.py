import os
import logging
import threading
from watchdog.observers import Observer
from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from cert_split.domain.watch_context import WatchContext
from cert_split.errors.setup_error import WatchSetupError, WatchTransientError

log = logging.getLogger(__name__)


class StoreEventHandler(FileSystemEventHandler):
    """Relays filesystem events for one file into the watch context.

    The directory is watched, not the file, so replacing the file by rename
    (as the ACME client and editors do) is observed as well.
    """
    WRITE_EVENTS = (EVENT_TYPE_MODIFIED, EVENT_TYPE_CLOSED, EVENT_TYPE_CREATED)

    def __init__(self, context: WatchContext, watched_path: str) -> None:
        super().__init__()
        self.context = context
        self.watched_path = watched_path

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            if not self._is_store_write(event):
                return
        except WatchTransientError as e:
            log.warning(f"{type(e).__name__}: {e}")
            return

        log.info(f"Detected change of '{self.watched_path}' ({event.event_type})")
        if not self.context.notify_change():
            log.debug("Change signal coalesced into the pending one")

    def _is_store_write(self, event: FileSystemEvent) -> bool:
        try:
            if event.is_directory:
                return False
            if event.event_type == EVENT_TYPE_MOVED:
                return os.fsdecode(event.dest_path) == self.watched_path
            if event.event_type in self.WRITE_EVENTS:
                return os.fsdecode(event.src_path) == self.watched_path
            return False
        except (TypeError, ValueError) as e:
            raise WatchTransientError(f"Ignoring unexpected watch event {event!r}: {e}") from e


class StoreWatcher:
    """Waits for the certificate store to appear, then reports every write.

    Runs on its own thread (see ``start``). Emits one change signal as soon
    as the store exists and one per observed write afterwards. Setup
    failures are handed to the controller through ``WatchContext.fail``.
    """

    def __init__(
        self,
        context: WatchContext,
        poll_interval: float = 1.0,
        supervise_interval: float = 5.0
    ) -> None:
        self.context = context
        self.poll_interval = poll_interval
        self.supervise_interval = supervise_interval
        self.watched_path = os.path.realpath(context.store_path)
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run_guarded, name="store-watcher", daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        if not self.wait_for_store():
            return

        log.info(f"Certificate store '{self.context.store_path}' found")
        observer = self._start_observer()
        self.context.mark_watching()
        log.info(f"Watching '{self.context.store_path}' for changes")
        # the store may have been written before the observer was registered
        self.context.notify_change()

        try:
            while not self.context.wait_cancelled(self.supervise_interval):
                if observer.is_alive():
                    continue
                try:
                    observer = self._restart_observer()
                except WatchTransientError as e:
                    log.warning(f"{type(e).__name__}: {e}")
                    continue
                # writes may have been missed while the observer was down
                self.context.notify_change()
        finally:
            observer.stop()
            if observer.is_alive():
                observer.join()
            log.debug(f"Stopped watching '{self.context.store_path}'")

    def wait_for_store(self) -> bool:
        """Poll until the store exists. Returns False if cancelled first."""
        while True:
            try:
                os.stat(self.context.store_path)
                return True
            except FileNotFoundError:
                pass
            except OSError as e:
                raise WatchSetupError(self.context.store_path, "Failed to check certificate store", cause=e)

            log.debug(f"Certificate store '{self.context.store_path}' not found yet, retrying in {self.poll_interval}s")
            if self.context.wait_cancelled(self.poll_interval):
                return False

    def _start_observer(self) -> Observer:
        observer = Observer()
        handler = StoreEventHandler(self.context, self.watched_path)
        try:
            observer.schedule(handler, os.path.dirname(self.watched_path), recursive=False)
            observer.start()
        except OSError as e:
            raise WatchSetupError(self.context.store_path, "Failed to watch certificate store", cause=e)
        return observer

    def _restart_observer(self) -> Observer:
        log.warning(f"Watch on '{self.context.store_path}' stopped unexpectedly, re-establishing")
        try:
            return self._start_observer()
        except WatchSetupError as e:
            raise WatchTransientError(f"Failed to re-establish watch, retrying in {self.supervise_interval}s: {e}") from e

    def _run_guarded(self) -> None:
        try:
            self.run()
        except WatchSetupError as e:
            log.error(f"Store watcher failed: {e}")
            self.context.fail(e)
        except Exception as e:
            log.exception("Store watcher crashed")
            self.context.fail(WatchSetupError(self.context.store_path, "Store watcher crashed", cause=e))
