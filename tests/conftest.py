import pytest
from pathlib import Path
from datetime import datetime, timedelta, timezone
from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec


def pem_block(label: str, seed: str, lines: int = 3) -> str:
    body = [f"{seed}{i:02d}".ljust(64, "A") for i in range(lines)]
    return "\n".join([f"-----BEGIN {label}-----", *body, f"-----END {label}-----"]) + "\n"


def fake_key(seed: str = "KEY") -> str:
    return pem_block("EC PRIVATE KEY", seed)


def fake_cert(seed: str = "CERT") -> str:
    return pem_block("CERTIFICATE", seed)


def make_self_signed(domain: str = "example.com", days: int = 90) -> tuple[str, str]:
    """Real EC key and certificate in PEM, as an ACME client would store them."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=days))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption()
    ).decode()
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
    return key_pem, cert_pem


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "example.com"


@pytest.fixture
def write_bundle(store_path: Path):
    def _write(*parts: str, path: Path | None = None) -> Path:
        target = path or store_path
        target.write_text("".join(parts), encoding="utf-8")
        return target
    return _write


@pytest.fixture
def executable(tmp_path: Path) -> Path:
    path = tmp_path / "bin" / "certbot"
    path.parent.mkdir()
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path
