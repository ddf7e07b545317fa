import os
import shlex
import logging
import tempfile
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence, Optional
from cryptography import x509

log = logging.getLogger(__name__)

CERT_BEGIN_MARKER = "-----BEGIN CERTIFICATE-----"
CERT_END_MARKER = "-----END CERTIFICATE-----"


def read_file(file_path: Path) -> str:
    try:
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return file_path.read_text(encoding="ascii", errors="ignore")


def write_atomic(file_path: Path, content: str, mode: int = 0o600) -> None:
    """Replace ``file_path`` with ``content`` so readers never see a partial file.

    The content goes to a temporary file in the same directory which is
    fsynced and renamed over the target. Raises OSError on failure, the
    temporary file is removed in that case.
    """
    fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, file_path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def get_cert_expire_date(cert_file: Path) -> datetime:
    """Expiration date of the first certificate found in ``cert_file``.

    Works for plain certificate files as well as for key+cert bundles.
    """
    pem_content = read_file(cert_file)
    cert_start = pem_content.find(CERT_BEGIN_MARKER)
    cert_end = pem_content.find(CERT_END_MARKER, cert_start)
    if cert_start == -1 or cert_end == -1:
        raise ValueError(f"File '{cert_file}' does not contain a valid PEM certificate block")

    cert_end += len(CERT_END_MARKER)
    cert_pem = pem_content[cert_start:cert_end].encode("utf-8")

    try:
        cert = x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise ValueError(f"Cannot parse certificate from file '{cert_file}': {e}")

    return cert.not_valid_after_utc.astimezone(timezone.utc)


def safe_str(x: object) -> str:
    return str(x).encode("unicode_escape").decode()


def run_cmd(
    args: Sequence[str | Path] | str,
    *,
    shell: bool = False,
    timeout: Optional[int] = None
) -> subprocess.CompletedProcess[str]:
    cmd: str | list[str]
    if shell:
        if isinstance(args, str):
            cmd = args
        else:
            cmd = " ".join(shlex.quote(str(a)) for a in args)
    else:
        if isinstance(args, str):
            cmd = shlex.split(args)
        else:
            cmd = [str(a) for a in args]

    result = subprocess.run(
        cmd,
        stdin=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        stdout=subprocess.PIPE,
        text=True,
        shell=shell,
        timeout=timeout
    )
    log.debug(f"Command executed shell={shell} return_code={result.returncode} cmd={cmd} stderr={safe_str(result.stderr.strip()) if result.stderr else ''}")
    return result
