"""Core module — config, logging, errors, secrets."""

from relayctl.core.config import Settings, get_settings, load_settings, reset_settings
from relayctl.core.exceptions import (
    ConfigIOError,
    ConflictError,
    ExternalToolError,
    InjectionRejectedError,
    NotFoundError,
    RelayError,
    ValidationError,
)
from relayctl.core.logging import setup_logging
from relayctl.core.secrets import SecretBox

__all__ = [
    "ConfigIOError",
    "ConflictError",
    "ExternalToolError",
    "InjectionRejectedError",
    "NotFoundError",
    "RelayError",
    "SecretBox",
    "Settings",
    "ValidationError",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
