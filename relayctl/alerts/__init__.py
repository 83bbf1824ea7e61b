"""Alerting subsystem — rule evaluation, alert lifecycle, notifications."""

from relayctl.alerts.channels import (
    ChatChannel,
    EmailChannel,
    NotificationChannel,
    WebhookChannel,
    build_channel,
)
from relayctl.alerts.engine import AlertEngine, evaluate_rule
from relayctl.alerts.factory import create_alert_stack
from relayctl.alerts.notifier import Notifier
from relayctl.alerts.runbooks import get_runbook
from relayctl.alerts.store import DEFAULT_RULES, AlertStore, RuleStore
from relayctl.alerts.types import (
    Alert,
    AlertRule,
    AlertStatus,
    ChannelType,
    MetricsSnapshot,
    NotificationChannelConfig,
    RuleType,
    Runbook,
    Severity,
)

__all__ = [
    "DEFAULT_RULES",
    "Alert",
    "AlertEngine",
    "AlertRule",
    "AlertStatus",
    "AlertStore",
    "ChannelType",
    "ChatChannel",
    "EmailChannel",
    "MetricsSnapshot",
    "NotificationChannel",
    "NotificationChannelConfig",
    "Notifier",
    "RuleStore",
    "RuleType",
    "Runbook",
    "Severity",
    "WebhookChannel",
    "build_channel",
    "create_alert_stack",
    "evaluate_rule",
    "get_runbook",
]
