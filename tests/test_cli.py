import subprocess
import pytest
from pathlib import Path
from unittest.mock import Mock
from typer.testing import CliRunner
from conftest import fake_cert, fake_key, make_self_signed
from cert_split.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    monkeypatch.setattr("cert_split.cli.setup_logging", lambda log_file, log_level: None)


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    store_dir = tmp_path / "storage" / "example.com"
    store_dir.mkdir(parents=True)
    return tmp_path / "storage"


def test_split_command(write_bundle, store_path):
    write_bundle(fake_key(), fake_cert("A"), fake_cert("B"))

    result = runner.invoke(app, ["split", str(store_path)])

    assert result.exit_code == 0, result.output
    assert "2 block(s)" in result.output
    assert Path(f"{store_path}.crt").read_text() == fake_cert("A") + fake_cert("B")


def test_split_command_fails_on_malformed_bundle(write_bundle, store_path):
    write_bundle(fake_key().replace("-----END EC PRIVATE KEY-----\n", ""))

    result = runner.invoke(app, ["split", str(store_path)])

    assert result.exit_code == 1
    assert not Path(f"{store_path}.key").exists()


def test_run_one_shot_with_existing_store(storage_dir):
    store_path = storage_dir / "example.com" / "example.com"
    key_pem, cert_pem = make_self_signed()
    store_path.write_text(key_pem + cert_pem)

    result = runner.invoke(app, [
        "run",
        "--domain", "example.com",
        "--storage-dir", str(storage_dir),
        "--skip-acme"
    ])

    assert result.exit_code == 0, result.output
    assert Path(f"{store_path}.key").read_text() == key_pem
    assert Path(f"{store_path}.crt").read_text() == cert_pem


def test_run_exits_with_failure_on_malformed_store(storage_dir):
    store_path = storage_dir / "example.com" / "example.com"
    store_path.write_text(fake_cert())

    result = runner.invoke(app, ["run", "-d", "example.com", "-s", str(storage_dir), "--skip-acme"])

    assert result.exit_code == 1


def test_run_rejects_invalid_domain(storage_dir):
    result = runner.invoke(app, ["run", "-d", "not a domain", "-s", str(storage_dir), "--skip-acme"])

    assert result.exit_code == 2


def test_run_reads_options_from_environment(storage_dir, monkeypatch):
    store_path = storage_dir / "example.com" / "example.com"
    store_path.write_text(fake_key() + fake_cert())
    monkeypatch.setenv("CERTSPLIT_DOMAIN", "example.com")
    monkeypatch.setenv("CERTSPLIT_STORAGE_DIR", str(storage_dir))
    monkeypatch.setenv("CERTSPLIT_SKIP_ACME", "true")

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 0, result.output
    assert Path(f"{store_path}.key").exists()


def test_status_shows_expiration_date(storage_dir):
    store_path = storage_dir / "example.com" / "example.com"
    store_path.write_text("".join(make_self_signed()))
    runner.invoke(app, ["split", str(store_path)])

    result = runner.invoke(app, ["status", "-d", "example.com", "-s", str(storage_dir)])

    assert result.exit_code == 0, result.output
    assert "600" in result.output
    assert "unreadable" not in result.output


def acme_run_args(storage_dir: Path, executable: Path) -> list[str]:
    return ["run", "-d", "example.com", "-s", str(storage_dir), "--with-acme", "--certbot-bin", str(executable)]


def test_run_reports_certbot_timeout_as_failure(storage_dir, executable, monkeypatch, caplog):
    monkeypatch.setattr("cert_split.domain.cert_bot.run_cmd", Mock(side_effect=subprocess.TimeoutExpired(["certbot"], 300)))

    result = runner.invoke(app, acme_run_args(storage_dir, executable))

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "AcmeClientError" in caplog.text
    assert "timed out after 300s" in caplog.text


def test_run_interrupted_during_issuance_exits_cleanly(storage_dir, executable, monkeypatch):
    monkeypatch.setattr("cert_split.domain.cert_bot.CertBot.issue", Mock(side_effect=KeyboardInterrupt))

    result = runner.invoke(app, acme_run_args(storage_dir, executable))

    assert result.exit_code == 0, result.output
    assert not (storage_dir / "example.com" / "example.com.key").exists()
