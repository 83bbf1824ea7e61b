"""Structured logging setup using structlog.

Relay credentials, webhook tokens and SMTP passwords pass through the
control plane, so every event goes through :class:`RedactSecrets` before it
is rendered.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, MutableMapping
from typing import Any

import structlog
from pydantic import SecretStr

from relayctl.core.config import get_settings

REDACTED = "**********"


class RedactSecrets:
    """structlog processor masking secret-looking keys and ``SecretStr`` values.

    A key is masked when it contains any of *fragments* (case-insensitive),
    so ``smtp_password`` and ``Authorization`` are both caught. Nested dicts
    are walked.
    """

    def __init__(self, fragments: Iterable[str]) -> None:
        self._fragments = tuple(f.lower() for f in fragments if f)

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key, value in list(event_dict.items()):
            if key == "event":
                continue
            event_dict[key] = self._scrub(key, value)
        return event_dict

    def _scrub(self, key: str, value: Any) -> Any:
        if isinstance(value, SecretStr) or self._is_secret(key):
            return REDACTED
        if isinstance(value, dict):
            return {k: self._scrub(str(k), v) for k, v in value.items()}
        return value

    def _is_secret(self, key: str) -> bool:
        lowered = key.lower()
        return any(f in lowered for f in self._fragments)


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog with JSON or console renderer.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer format override ("json" or "console"). Uses config if None.
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.logging.level).upper(), logging.INFO)
    log_format = fmt or settings.logging.format

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        RedactSecrets(settings.logging.redact_keys),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
