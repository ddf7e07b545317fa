import logging
import typer
from pathlib import Path
from datetime import datetime
from typing import Any
from rich.console import Console
from rich.table import Table, box
from cert_split.app import create_daemon, setup_logging
from cert_split.conf.config import Config
from cert_split.domain.bundle import ArtifactPaths, BundleSplitter
from cert_split.domain.lifecycle import ExitCode
from cert_split.errors.acme_error import AcmeClientError
from cert_split.errors.setup_error import SetupError
from cert_split.errors.split_error import SplitError
from cert_split.errors.validation_error import ValidationError
from cert_split.utils import get_cert_expire_date

ENV_PREFIX = "CERTSPLIT_"
DATE_FMT = "%Y-%m-%d %H:%M"
LOGGER = logging.getLogger("cert-split")

app = typer.Typer(
    add_completion=False,
    help="Obtain a TLS certificate and keep separate .key/.crt files in sync with the certificate store"
)
console = Console()


class Opt:
    @staticmethod
    def config() -> Any:
        return typer.Option(
            None, "--config", "-c",
            envvar=f"{ENV_PREFIX}CONFIG",
            help="YAML config file, command line options take precedence over its values"
        )

    @staticmethod
    def domain() -> Any:
        return typer.Option(
            None, "--domain", "-d",
            envvar=f"{ENV_PREFIX}DOMAIN",
            help="The domain name to create a certificate for"
        )

    @staticmethod
    def storage_dir() -> Any:
        return typer.Option(
            None, "--storage-dir", "-s",
            envvar=f"{ENV_PREFIX}STORAGE_DIR",
            help="Directory to store the certificate in, files are kept in <storage-dir>/<domain>/"
        )

    @staticmethod
    def log_level() -> Any:
        return typer.Option(
            None, "--log-level",
            envvar=f"{ENV_PREFIX}LOG_LEVEL",
            help="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )

    @staticmethod
    def log_file() -> Any:
        return typer.Option(
            None, "--log-file",
            envvar=f"{ENV_PREFIX}LOG_FILE",
            help="Log file, rotated at 2 MiB"
        )


@app.command(help="Obtain the certificate and split the certificate store into .key and .crt files")
def run(
    config_file: Path = Opt.config(),
    domain: str = Opt.domain(),
    storage_dir: Path = Opt.storage_dir(),
    log_level: str = Opt.log_level(),
    log_file: Path = Opt.log_file(),
    daemon: bool = typer.Option(
        None, "--daemon/--no-daemon",
        envvar=f"{ENV_PREFIX}DAEMON",
        help="Keep running, renew the certificate before it expires and update the .key and .crt files on every change"
    ),
    email: str = typer.Option(
        None, "--email", "-e",
        envvar=f"{ENV_PREFIX}EMAIL",
        help="Contact email for the ACME account"
    ),
    acme_server: str = typer.Option(
        None, "--acme-server",
        envvar=f"{ENV_PREFIX}ACME_SERVER",
        help="ACME directory URL"
    ),
    certbot_bin: Path = typer.Option(
        None, "--certbot-bin",
        envvar=f"{ENV_PREFIX}CERTBOT_BIN",
        help="Path to the certbot executable"
    ),
    http_port: int = typer.Option(
        None, "--http-port",
        envvar=f"{ENV_PREFIX}HTTP_PORT",
        help="Port for the HTTP-01 challenge responder"
    ),
    post_hook: str = typer.Option(
        None, "--post-hook",
        envvar=f"{ENV_PREFIX}POST_HOOK",
        help="Shell command to run after every successful update of the .key and .crt files"
    ),
    skip_acme: bool = typer.Option(
        None, "--skip-acme/--with-acme",
        envvar=f"{ENV_PREFIX}SKIP_ACME",
        help="Do not run the ACME client, only watch and split an externally managed certificate store"
    )
) -> None:
    config = load_config(config_file, {
        "domain": domain,
        "storage_dir": storage_dir,
        "log_level": log_level,
        "log_file": log_file,
        "daemon": daemon,
        "email": email,
        "acme_server": acme_server,
        "certbot_bin": certbot_bin,
        "http_port": http_port,
        "post_hook": post_hook,
        "skip_acme": skip_acme
    })
    setup_logging(config.log_file, config.log_level)

    try:
        daemon_app = create_daemon(config)
        exit_code = daemon_app.run()
    except (SetupError, AcmeClientError, OSError) as e:
        LOGGER.error(f"{type(e).__name__}: {e}")
        raise typer.Exit(code=ExitCode.FAILURE.value)

    raise typer.Exit(code=exit_code.value)


@app.command(help="Split a certificate bundle into .key and .crt files next to it")
def split(
    bundle: Path = typer.Argument(..., help="Combined private key and certificate PEM file"),
    log_level: str = Opt.log_level(),
    log_file: Path = Opt.log_file()
) -> None:
    setup_logging(log_file, log_level)

    try:
        result = BundleSplitter().split(bundle)
    except SplitError as e:
        LOGGER.error(f"{type(e).__name__}: {e}")
        console.print(str(e), style="red", markup=False, highlight=False)
        raise typer.Exit(code=ExitCode.FAILURE.value)

    console.print(f"Private key: {result.paths.key} ({result.key_blocks} block(s))", markup=False, soft_wrap=True)
    console.print(f"Certificate chain: {result.paths.cert} ({result.cert_blocks} block(s))", markup=False, soft_wrap=True)


@app.command(help="Show the certificate store and the derived files")
def status(
    config_file: Path = Opt.config(),
    domain: str = Opt.domain(),
    storage_dir: Path = Opt.storage_dir()
) -> None:
    config = load_config(config_file, {
        "domain": domain,
        "storage_dir": storage_dir,
        "skip_acme": True
    })
    paths = ArtifactPaths.from_store(config.store_path)

    table = Table(show_header=True, header_style="bold", expand=True, box=box.ROUNDED)
    for col in ("file", "path", "exists", "mode", "expire_date"):
        table.add_column(col, overflow="fold")

    for name, path, has_cert in (("store", config.store_path, True), ("key", paths.key, False), ("cert", paths.cert, True)):
        exists = path.exists()
        table.add_row(
            name,
            str(path),
            "yes" if exists else "no",
            f"{path.stat().st_mode & 0o777:o}" if exists else "-",
            _expire_date_cell(path) if exists and has_cert else "-"
        )

    console.print(table)


def load_config(config_file: Path | None, overrides: dict[str, Any]) -> Config:
    try:
        return Config.load(config_file, overrides)
    except ValidationError as e:
        raise typer.BadParameter(str(e))


def _expire_date_cell(path: Path) -> str:
    try:
        return datetime.strftime(get_cert_expire_date(path), DATE_FMT)
    except (OSError, ValueError) as e:
        return f"unreadable ({e})"
