"""Notification channels — email, webhook and chat-webhook delivery."""

from __future__ import annotations

import abc
import datetime
from email.message import EmailMessage
from typing import Any

import aiohttp
import aiosmtplib
import structlog

from relayctl.alerts.types import Alert, ChannelType, NotificationChannelConfig, Severity
from relayctl.core.exceptions import ValidationError
from relayctl.core.secrets import ENCRYPTED_PREFIX, SecretBox

logger = structlog.get_logger(__name__)

FOOTER = "relayctl Alert System"

# Chat attachment colours keyed by severity.
_CHAT_COLORS: dict[Severity, str] = {
    Severity.WARNING: "#ffcc00",
    Severity.CRITICAL: "#ff0000",
}

DEFAULT_SMTP_PORT = 587
SMTPS_PORT = 465


def _iso(ts: datetime.datetime) -> str:
    return ts.astimezone(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    def __init__(self, config: NotificationChannelConfig) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name or f"{self.config.type.value}-{self.config.id}"

    @abc.abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Send an alert. Returns True on success."""

    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HTTPChannel(NotificationChannel):
    """Shared lazily-created aiohttp session."""

    def __init__(self, config: NotificationChannelConfig, timeout_secs: float = 10.0) -> None:
        super().__init__(config)
        self._timeout = aiohttp.ClientTimeout(total=timeout_secs)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> bool:
        try:
            session = self._get_session()
            async with session.post(url, json=payload, headers=headers) as resp:
                if resp.status < 400:
                    return True
                body = await resp.text()
                logger.warning(
                    "channel_send_failed",
                    channel=self.name,
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("channel_send_error", channel=self.name)
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class WebhookChannel(_HTTPChannel):
    """POSTs a JSON document describing the alert.

    Config keys: ``url`` (required), ``authorization`` (optional header value).
    """

    async def send(self, alert: Alert) -> bool:
        url = self.config.config.get("url", "")
        if not url:
            logger.warning("channel_misconfigured", channel=self.name, missing="url")
            return False

        headers = {"Content-Type": "application/json"}
        auth = self.config.config.get("authorization", "")
        if auth:
            headers["Authorization"] = auth

        return await self._post(url, webhook_payload(alert), headers)


class ChatChannel(_HTTPChannel):
    """Slack-compatible incoming webhook with a severity-coloured attachment.

    Config keys: ``webhook_url`` (required), ``channel`` (optional override).
    """

    async def send(self, alert: Alert) -> bool:
        url = self.config.config.get("webhook_url", "")
        if not url:
            logger.warning("channel_misconfigured", channel=self.name, missing="webhook_url")
            return False

        payload = chat_payload(alert, self.config.config.get("channel", ""))
        return await self._post(url, payload, {"Content-Type": "application/json"})


class EmailChannel(NotificationChannel):
    """Plain-text alert mail through an SMTP submission server.

    Config keys: ``smtp_host``, ``smtp_port`` (default 587), ``from``,
    ``to`` (comma separated), optional ``username``/``password``.
    """

    def __init__(self, config: NotificationChannelConfig, timeout_secs: float = 10.0) -> None:
        super().__init__(config)
        self._timeout = timeout_secs

    async def send(self, alert: Alert) -> bool:
        cfg = self.config.config
        host = cfg.get("smtp_host", "")
        sender = cfg.get("from", "")
        recipients = [r.strip() for r in cfg.get("to", "").split(",") if r.strip()]
        if not host or not sender or not recipients:
            logger.warning("channel_misconfigured", channel=self.name, missing="email settings")
            return False

        try:
            port = int(cfg.get("smtp_port") or DEFAULT_SMTP_PORT)
        except ValueError:
            logger.warning("channel_misconfigured", channel=self.name, invalid="smtp_port")
            return False

        username = cfg.get("username") or None
        password = cfg.get("password") or None
        if not (username and password):
            username = password = None

        try:
            await aiosmtplib.send(
                build_email(alert, sender, recipients),
                hostname=host,
                port=port,
                username=username,
                password=password,
                use_tls=port == SMTPS_PORT,
                timeout=self._timeout,
            )
        except Exception:
            logger.exception("channel_send_error", channel=self.name, host=host)
            return False
        return True


# ── Payload builders ────────────────────────────────────────────


def webhook_payload(alert: Alert, now: datetime.datetime | None = None) -> dict[str, Any]:
    return {
        "alert": {
            "id": alert.id,
            "rule": alert.rule_name,
            "severity": alert.severity.value,
            "status": alert.status.value,
            "message": alert.message,
            "triggeredAt": _iso(alert.triggered_at),
            "context": alert.context,
        },
        "timestamp": _iso(now or datetime.datetime.now(datetime.UTC)),
    }


def chat_payload(alert: Alert, channel: str = "") -> dict[str, Any]:
    payload: dict[str, Any] = {
        "attachments": [
            {
                "color": _CHAT_COLORS.get(alert.severity, _CHAT_COLORS[Severity.WARNING]),
                "title": f"[{alert.severity.value.upper()}] {alert.rule_name}",
                "text": alert.message,
                "fields": [
                    {"title": "Status", "value": alert.status.value, "short": True},
                    {"title": "Triggered At", "value": _iso(alert.triggered_at), "short": True},
                ],
                "footer": FOOTER,
                "ts": int(alert.triggered_at.timestamp()),
            },
        ],
    }
    if channel:
        payload["channel"] = channel
    return payload


def build_email(alert: Alert, sender: str, recipients: list[str]) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = f"[{alert.severity.value.upper()}] {alert.rule_name}: {alert.message}"
    msg.set_content(
        f"Alert: {alert.rule_name}\n"
        f"Severity: {alert.severity.value}\n"
        f"Status: {alert.status.value}\n"
        f"Triggered At: {_iso(alert.triggered_at)}\n"
        f"\n"
        f"Message: {alert.message}\n"
        f"\n"
        f"--\n"
        f"{FOOTER}\n"
    )
    return msg


# ── Construction ────────────────────────────────────────────────


_CHANNEL_TYPES: dict[ChannelType, type[NotificationChannel]] = {
    ChannelType.EMAIL: EmailChannel,
    ChannelType.WEBHOOK: WebhookChannel,
    ChannelType.CHAT: ChatChannel,
}


def reveal_config(config: dict[str, str], secret_box: SecretBox | None) -> dict[str, str]:
    """Decrypt ``enc:``-prefixed values; fails if one exists without a box."""
    revealed: dict[str, str] = {}
    for key, value in config.items():
        if value.startswith(ENCRYPTED_PREFIX):
            if secret_box is None:
                raise ValidationError(f"channel setting {key!r} is encrypted but no passphrase is set")
            value = secret_box.reveal(value)
        revealed[key] = value
    return revealed


def build_channel(
    config: NotificationChannelConfig,
    secret_box: SecretBox | None = None,
    timeout_secs: float = 10.0,
) -> NotificationChannel:
    """Instantiate the channel class for *config* with secrets decrypted."""
    resolved = config.model_copy(update={"config": reveal_config(config.config, secret_box)})
    cls = _CHANNEL_TYPES[resolved.type]
    return cls(resolved, timeout_secs=timeout_secs)  # type: ignore[call-arg]
