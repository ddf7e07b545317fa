import logging
import subprocess
from pathlib import Path
from dataclasses import dataclass
from typing import Sequence
from cert_split.conf.config import Config
from cert_split.errors.acme_error import AcmeClientError
from cert_split.utils import read_file, run_cmd, write_atomic

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertBot:
    acme_server: str
    work_dir: Path
    logs_dir: Path
    conf_dir: Path
    exe_path: Path
    http_port: int
    base_args: Sequence[str]
    timeout: int = 300

    @classmethod
    def load(
        cls,
        acme_server: str,
        base_dir: Path,
        exe_path: Path,
        http_port: int = 80
    ) -> "CertBot":
        work_dir = base_dir / "work"
        logs_dir = base_dir / "logs"
        conf_dir = base_dir / "config"

        return cls(
            acme_server = acme_server,
            work_dir = work_dir,
            logs_dir = logs_dir,
            conf_dir = conf_dir,
            exe_path = exe_path,
            http_port = http_port,
            base_args = [
                "--non-interactive",
                "--server", acme_server,
                "--config-dir", str(conf_dir),
                "--work-dir", str(work_dir),
                "--logs-dir", str(logs_dir),
                "--max-log-backups", "10",
                "--issuance-timeout", "90"
            ]
        )

    @classmethod
    def from_config(cls, config: Config) -> "CertBot":
        return cls.load(config.acme_server, config.store_dir / ".certbot", config.certbot_bin, config.http_port)

    def issue(self, domain: str, email: str | None = None) -> None:
        cmd = [
            str(self.exe_path),
            "certonly",
            "--standalone",
            "--preferred-challenges", "http",
            "--http-01-port", str(self.http_port),
            "--cert-name", domain,
            "-d", domain,
            *(["--email", email] if email else ["--register-unsafely-without-email"]),
            "--agree-tos",
            "--keep-until-expiring",
            *self.base_args
        ]
        log.debug(f"Certbot issue command for '{domain}' certificate: {' '.join(cmd)}")

        self._run_cmd(domain, cmd)
        log.info(f"Certificate for '{domain}' issued")

    def renew(self, domain: str) -> None:
        cmd = [
            str(self.exe_path),
            "renew",
            "--cert-name", domain,
            "--standalone",
            "--http-01-port", str(self.http_port),
            "--force-renewal",
            *self.base_args
        ]
        log.debug(f"Certbot renew command for '{domain}' certificate: {' '.join(cmd)}")

        self._run_cmd(domain, cmd)
        log.info(f"Certificate for '{domain}' renewed")

    def obtain(self, domain: str, email: str | None, store_path: Path, force: bool = False) -> Path:
        """Make sure a bundle for ``domain`` exists at ``store_path``.

        Issues the certificate when the bundle is missing (or ``force`` is
        set) and writes the bundle from the certificate files kept by certbot.
        """
        if force or not store_path.exists():
            self.issue(domain, email)
            self.write_bundle(domain, store_path)
        else:
            log.info(f"Certificate store '{store_path}' already exists, skipping issuance")
        return store_path

    def write_bundle(self, domain: str, store_path: Path) -> None:
        """Write private key followed by the full chain as one bundle, atomically."""
        parts = [read_file(path).strip() for path in (self.get_private_key_path(domain), self.get_fullchain_path(domain))]
        write_atomic(store_path, "\n".join(parts) + "\n", mode=0o600)
        log.info(f"Certificate store '{store_path}' written")

    def _run_cmd(self, domain: str, cmd: list[str]) -> None:
        try:
            result = run_cmd(cmd, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise AcmeClientError(domain, return_code=-1, cmd=cmd, output=f"timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise AcmeClientError(domain, return_code=result.returncode, cmd=cmd, output=result.stderr)

    def get_fullchain_path(self, domain: str) -> Path:
        return self.conf_dir / "live" / domain / "fullchain.pem"

    def get_private_key_path(self, domain: str) -> Path:
        return self.conf_dir / "live" / domain / "privkey.pem"
