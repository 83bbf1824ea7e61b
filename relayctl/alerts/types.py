"""Domain types for the alerting subsystem."""

from __future__ import annotations

import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Severity(StrEnum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertStatus(StrEnum):
    FIRING = "firing"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SILENCED = "silenced"


class RuleType(StrEnum):
    QUEUE_GROWTH = "queue_growth"
    DEFERRED_SPIKE = "deferred_spike"
    AUTH_FAILURES = "auth_failures"
    TLS_FAILURES = "tls_failures"
    BOUNCE_RATE = "bounce_rate"
    CONNECTION_RATE = "connection_rate"


class ChannelType(StrEnum):
    EMAIL = "email"
    WEBHOOK = "webhook"
    CHAT = "chat"


class AlertRule(BaseModel):
    """A single-threshold detection rule.

    ``type`` is kept as a plain string: rules of a type the evaluator does
    not know are stored and listed but never fire.
    ``threshold_duration`` is informational; windowing is the metrics
    producer's job.
    """

    id: int = 0
    name: str
    description: str = ""
    type: str
    threshold_value: float
    threshold_duration: int = 0
    severity: Severity = Severity.WARNING
    enabled: bool = True


class Alert(BaseModel):
    id: int
    rule_id: int
    rule_name: str = ""
    rule_type: str = ""
    severity: Severity
    status: AlertStatus = AlertStatus.FIRING
    message: str = ""
    context: dict[str, Any] = Field(default_factory=dict)
    triggered_at: datetime.datetime = Field(default_factory=_utcnow)
    acknowledged_at: datetime.datetime | None = None
    acknowledged_by: str | None = None
    note: str = ""
    resolved_at: datetime.datetime | None = None
    silenced_until: datetime.datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in (
            AlertStatus.FIRING,
            AlertStatus.ACKNOWLEDGED,
            AlertStatus.SILENCED,
        )


class MetricsSnapshot(BaseModel):
    """Latest aggregated metrics the rules are evaluated against."""

    queue_active: int = 0
    queue_deferred: int = 0
    queue_hold: int = 0
    auth_failures: int = 0
    tls_failures: int = 0
    bounce_rate: float = 0.0
    connection_rate: float = 0.0
    collected_at: datetime.datetime = Field(default_factory=_utcnow)

    @property
    def queue_total(self) -> int:
        return self.queue_active + self.queue_deferred + self.queue_hold

    @classmethod
    def from_queue_summary(cls, summary: Any, **extra: Any) -> MetricsSnapshot:
        """Build a snapshot from a :class:`~relayctl.queue.QueueSummary`."""
        return cls(
            queue_active=summary.active,
            queue_deferred=summary.deferred,
            queue_hold=summary.hold,
            **extra,
        )


class NotificationChannelConfig(BaseModel):
    id: int = 0
    name: str = ""
    type: ChannelType
    enabled: bool = True
    config: dict[str, str] = Field(default_factory=dict)


class Runbook(BaseModel):
    title: str
    overview: str
    steps: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
