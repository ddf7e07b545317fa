import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from dataclasses import dataclass
from cert_split.conf.config import Config
from cert_split.domain.bundle import BundleSplitter
from cert_split.domain.cert_bot import CertBot
from cert_split.domain.lifecycle import ExitCode, LifecycleController, install_signal_handlers
from cert_split.domain.post_hook import PostHook
from cert_split.domain.renewal import RenewalScheduler
from cert_split.domain.store_watcher import StoreWatcher
from cert_split.domain.watch_context import WatchContext
from cert_split.errors.acme_error import AcmeClientError
from cert_split.errors.setup_error import SetupError

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [pid=%(process)d] [%(name)s] %(message)s"
LOG_DATE_FMT = "%Y-%m-%d %H:%M:%S"


@dataclass
class Daemon:
    config: Config
    context: WatchContext
    controller: LifecycleController
    certbot: CertBot | None = None
    renewal: RenewalScheduler | None = None

    def run(self) -> ExitCode:
        restore_signals = install_signal_handlers(self.controller)
        try:
            if self.certbot is not None and not self._obtain():
                return ExitCode.OK

            if self.renewal is not None:
                self.renewal.start()

            return self.controller.run()
        finally:
            restore_signals()
            if self.renewal is not None:
                self.renewal.join(self.controller.join_timeout)

    def _obtain(self) -> bool:
        """Run the initial issuance. Returns False when termination was
        requested meanwhile; certbot exiting on the same signal is not a failure."""
        try:
            self.certbot.obtain(self.config.domain, self.config.email, self.config.store_path)
        except KeyboardInterrupt:
            log.info("Certificate issuance interrupted")
            self.context.cancel()
        except AcmeClientError:
            if not self.context.cancelled:
                raise
            log.info("Certificate issuance aborted by termination request")

        if self.context.cancelled:
            log.info("Received signal to quit")
            return False
        return True


def create_daemon(config: Config) -> Daemon:
    setup_paths(config)

    context = WatchContext(config.store_path)
    watcher = StoreWatcher(context, poll_interval=config.poll_interval)
    controller = LifecycleController(
        context,
        watcher,
        BundleSplitter(),
        daemon=config.daemon,
        post_hook=PostHook(config.post_hook) if config.post_hook else None
    )

    certbot = None if config.skip_acme else CertBot.from_config(config)
    renewal = None
    if certbot is not None and config.daemon:
        renewal = RenewalScheduler(
            context,
            certbot,
            config.domain,
            renew_before_days=config.renew_before_days,
            check_interval=config.renew_check_interval
        )

    return Daemon(config, context, controller, certbot, renewal)


def setup_paths(config: Config) -> None:
    try:
        config.store_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise SetupError(config.store_dir, "Failed to create certificate store directory", cause=e)


def setup_logging(log_file: Path | None, log_level: str | None) -> None:
    root = logging.getLogger()
    if any(getattr(h, "_cert_split_handler", False) for h in root.handlers):
        return

    level_name = (log_level or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FMT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            filename=log_file,
            maxBytes=2 * 1024 * 1024,
            backupCount=5,
            encoding="UTF-8"
        ))

    for handler in handlers:
        handler._cert_split_handler = True
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level)
    log.debug("Logging initialized (level=%s)", level_name)
