import logging
import threading
from pathlib import Path
from datetime import datetime, timedelta, timezone
from cert_split.domain.cert_bot import CertBot
from cert_split.domain.watch_context import WatchContext
from cert_split.errors.acme_error import AcmeClientError
from cert_split.utils import get_cert_expire_date

log = logging.getLogger(__name__)


class RenewalScheduler:
    """Renews the certificate shortly before it expires.

    The renewed bundle is written over the store, which the store watcher
    then reports like any other write.
    """

    def __init__(
        self,
        context: WatchContext,
        certbot: CertBot,
        domain: str,
        *,
        renew_before_days: int,
        check_interval: float
    ) -> None:
        self.context = context
        self.certbot = certbot
        self.domain = domain
        self.renew_before = timedelta(days=renew_before_days)
        self.check_interval = check_interval
        self._thread: threading.Thread | None = None

    @property
    def store_path(self) -> Path:
        return self.context.store_path

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="renewal-scheduler", daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        while not self.context.wait_cancelled(self.check_interval):
            self.check()

    def is_renewal_due(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expire_date = get_cert_expire_date(self.store_path)
        return expire_date - now <= self.renew_before

    def check(self) -> bool:
        """Renew if due. Returns True when the bundle was renewed; errors are
        logged and retried on the next check."""
        try:
            if not self.is_renewal_due():
                log.debug(f"Certificate for '{self.domain}' is not due for renewal")
                return False
        except (OSError, ValueError) as e:
            log.warning(f"Cannot check expiration date of '{self.store_path}', renewing: {e}")

        try:
            self.certbot.renew(self.domain)
            self.certbot.write_bundle(self.domain, self.store_path)
        except AcmeClientError as e:
            log.error(f"Renewal failed, retrying in {self.check_interval}s: {e}")
            return False
        except OSError as e:
            log.error(f"Failed to write renewed certificate store '{self.store_path}', retrying in {self.check_interval}s: {e}")
            return False

        return True
