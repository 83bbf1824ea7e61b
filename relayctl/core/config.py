"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class PostfixConfig(BaseModel):
    """Location of the MTA configuration and how its tools are invoked."""

    config_dir: Path = Path("/etc/postfix")
    main_cf: str = "main.cf"
    use_sudo: bool = True
    command_timeout_secs: float = 30.0
    max_backups: int = 20
    certs_subdir: str = "certs"
    history_file: Path = Path("/var/lib/relayctl/config-history.json")


class MapsConfig(BaseModel):
    """Auxiliary lookup tables and their compiled index form."""

    map_type: str = "hash"
    index_suffix: str = ".db"
    transport_file: str = "transport"
    sender_relay_file: str = "sender_relay"
    credentials_file: str = "sasl_passwd"


class QueueConfig(BaseModel):
    """Queue listing and the constrained queue-action helper."""

    list_command: list[str] = ["mailq"]
    helper_path: str = "/opt/relayctl/bin/relayctl-postsuper"
    postsuper_path: str = "/usr/sbin/postsuper"
    postqueue_path: str = "/usr/sbin/postqueue"


class ChannelConfig(BaseModel):
    """A notification channel as declared in settings."""

    id: int = 0
    name: str = ""
    type: str = "webhook"
    enabled: bool = True
    config: dict[str, str] = Field(default_factory=dict)


class RuleConfig(BaseModel):
    """An alert rule seed as declared in settings."""

    name: str
    type: str
    threshold_value: float
    threshold_duration: int = 0
    severity: str = "warning"
    description: str = ""
    enabled: bool = True


class AlertsConfig(BaseModel):
    """Alert engine cadence and notification fan-out."""

    enabled: bool = True
    eval_interval_secs: float = 30.0
    cleanup_interval_secs: float = 60.0
    max_inflight_notifications: int = 64
    history_limit: int = 1000
    http_timeout_secs: float = 10.0
    channels: list[ChannelConfig] = Field(default_factory=list)
    rules: list[RuleConfig] = Field(default_factory=list)


class SecretsConfig(BaseModel):
    """Passphrase for the secret box (encrypted channel settings)."""

    passphrase: SecretStr = SecretStr("")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    redact_keys: list[str] = Field(
        default_factory=lambda: ["password", "secret", "authorization", "token"],
    )


class Settings(BaseModel):
    """Root settings container."""

    postfix: PostfixConfig = PostfixConfig()
    maps: MapsConfig = MapsConfig()
    queue: QueueConfig = QueueConfig()
    alerts: AlertsConfig = AlertsConfig()
    secrets: SecretsConfig = SecretsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
