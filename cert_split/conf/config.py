import yaml
from pathlib import Path
from typing import ClassVar, Dict, Any
from dataclasses import dataclass, fields
from cert_split.validation.require import Require
from cert_split.errors.validation_error import ValidationError


@dataclass(frozen=True)
class Config:
    ALLOWED_LOG_LEVELS: ClassVar[set[str]] = { "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL" }
    PATH_FIELDS: ClassVar[set[str]] = { "storage_dir", "log_file", "certbot_bin" }

    domain: str = None
    storage_dir: Path = Path("/var/lib/cert-split")
    email: str | None = None
    daemon: bool = False
    log_level: str = "INFO"
    log_file: Path | None = None
    acme_server: str = "https://acme-v02.api.letsencrypt.org/directory"
    certbot_bin: Path = Path("/usr/bin/certbot")
    http_port: int = 80
    renew_before_days: int = 30
    renew_check_interval: int = 12 * 60 * 60
    poll_interval: float = 1.0
    post_hook: str | None = None
    skip_acme: bool = False

    @classmethod
    def load(
        cls,
        conf_file: Path | None = None,
        overrides: Dict[str, Any] | None = None
    ) -> "Config":
        """Build the config from field defaults, an optional YAML file and
        explicit overrides (CLI options), in that order of precedence.

        Overrides set to None are ignored so unset CLI options do not mask
        values from the file.
        """
        params: Dict[str, Any] = {f.name: f.default for f in fields(cls)}

        if conf_file is not None:
            params.update(cls._read_conf_file(conf_file))

        for key, val in (overrides or {}).items():
            if key not in params:
                raise ValidationError(f"Unknown config option '{key}'")
            if val is not None:
                params[key] = val

        for name in cls.PATH_FIELDS:
            if params[name] is not None:
                params[name] = Path(params[name]).expanduser()

        if isinstance(params["log_level"], str):
            params["log_level"] = params["log_level"].upper()

        cls._validate(params)
        return cls(**params)

    @property
    def store_dir(self) -> Path:
        return self.storage_dir / self.domain

    @property
    def store_path(self) -> Path:
        return self.store_dir / self.domain

    @classmethod
    def _read_conf_file(cls, conf_file: Path) -> Dict[str, Any]:
        conf_file = Require.file_exists("config", conf_file)

        try:
            raw_conf = yaml.safe_load(conf_file.read_text(encoding="UTF-8")) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Failed to parse '{conf_file}' config file as valid YAML file: {e}")

        Require.type("config", raw_conf, dict, f"Config file '{conf_file}' must contain a mapping of options")
        known = {f.name for f in fields(cls)}
        params: Dict[str, Any] = {}

        for key, val in raw_conf.items():
            name = str(key).replace("-", "_")
            if name not in known:
                raise ValidationError(f"Failed to parse '{conf_file}' config file: unknown option '{key}'")
            params[name] = val

        return params

    @staticmethod
    def _validate(params: Dict[str, Any]) -> None:
        Require.present("domain", params["domain"])
        Require.domain("domain", params["domain"])

        if params["email"]:
            Require.email("email", params["email"])

        Require.one_of("log_level", params["log_level"], Config.ALLOWED_LOG_LEVELS)
        Require.type("daemon", params["daemon"], bool)
        Require.type("skip_acme", params["skip_acme"], bool)
        Require.port("http_port", params["http_port"])

        Require.type("renew_before_days", params["renew_before_days"], int)
        Require.min("renew_before_days", params["renew_before_days"], 1)
        Require.max("renew_before_days", params["renew_before_days"], 60)

        Require.type("renew_check_interval", params["renew_check_interval"], int)
        Require.min("renew_check_interval", params["renew_check_interval"], 60)

        Require.type("poll_interval", params["poll_interval"], (int, float))
        Require.min("poll_interval", params["poll_interval"], 0.01)

        if not params["skip_acme"]:
            Require.executable("certbot_bin", params["certbot_bin"])
