"""In-memory rule and alert stores.

Durable persistence is an external collaborator; these stores hold the
working set the engine evaluates and transitions.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from relayctl.alerts.types import Alert, AlertRule, AlertStatus, RuleType, Severity
from relayctl.core.exceptions import NotFoundError

DEFAULT_RULES: list[AlertRule] = [
    AlertRule(
        name="Queue Growth Warning",
        description="Mail queue exceeds threshold",
        type=RuleType.QUEUE_GROWTH,
        threshold_value=100,
        threshold_duration=300,
        severity=Severity.WARNING,
    ),
    AlertRule(
        name="Queue Growth Critical",
        description="Mail queue severely backed up",
        type=RuleType.QUEUE_GROWTH,
        threshold_value=500,
        threshold_duration=300,
        severity=Severity.CRITICAL,
    ),
    AlertRule(
        name="Deferred Mail Spike",
        description="Unusual deferred mail count",
        type=RuleType.DEFERRED_SPIKE,
        threshold_value=50,
        threshold_duration=3600,
    ),
    AlertRule(
        name="Auth Failures",
        description="SMTP authentication failures detected",
        type=RuleType.AUTH_FAILURES,
        threshold_value=10,
        threshold_duration=3600,
    ),
    AlertRule(
        name="TLS Failures",
        description="TLS handshake failures detected",
        type=RuleType.TLS_FAILURES,
        threshold_value=20,
        threshold_duration=3600,
    ),
]

_MUTABLE_RULE_FIELDS = {
    "name",
    "description",
    "type",
    "threshold_value",
    "threshold_duration",
    "severity",
    "enabled",
}

_TERMINAL = (AlertStatus.RESOLVED,)


class RuleStore:
    """Editable rule set. The engine only sees edits after it reloads."""

    def __init__(self, rules: Iterable[AlertRule] | None = None, seed_defaults: bool = True) -> None:
        self._lock = threading.Lock()
        self._rules: dict[int, AlertRule] = {}
        self._next_id = 1
        initial = list(rules or [])
        if not initial and seed_defaults:
            initial = [r.model_copy() for r in DEFAULT_RULES]
        for rule in initial:
            self.create(rule)

    def list(self) -> list[AlertRule]:
        with self._lock:
            return sorted(
                (r.model_copy() for r in self._rules.values()),
                key=lambda r: (r.name, r.id),
            )

    def get(self, rule_id: int) -> AlertRule:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                raise NotFoundError(f"alert rule {rule_id} not found")
            return rule.model_copy()

    def create(self, rule: AlertRule) -> AlertRule:
        with self._lock:
            stored = rule.model_copy(update={"id": self._next_id})
            self._rules[stored.id] = stored
            self._next_id += 1
            return stored.model_copy()

    def update(self, rule_id: int, changes: dict[str, Any]) -> AlertRule:
        unknown = set(changes) - _MUTABLE_RULE_FIELDS
        if unknown:
            raise ValueError(f"cannot update rule fields: {sorted(unknown)}")
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                raise NotFoundError(f"alert rule {rule_id} not found")
            updated = AlertRule.model_validate({**rule.model_dump(), **changes})
            self._rules[rule_id] = updated
            return updated.model_copy()

    def delete(self, rule_id: int) -> None:
        with self._lock:
            if self._rules.pop(rule_id, None) is None:
                raise NotFoundError(f"alert rule {rule_id} not found")


class AlertStore:
    """Alert records keyed by a monotonically increasing id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._alerts: dict[int, Alert] = {}
        self._next_id = 1

    def create(self, **fields: Any) -> Alert:
        with self._lock:
            alert = Alert(id=self._next_id, **fields)
            self._alerts[alert.id] = alert
            self._next_id += 1
            return alert.model_copy()

    def get(self, alert_id: int) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise NotFoundError(f"alert {alert_id} not found")
            return alert.model_copy()

    def save(self, alert: Alert) -> None:
        with self._lock:
            if alert.id not in self._alerts:
                raise NotFoundError(f"alert {alert.id} not found")
            self._alerts[alert.id] = alert.model_copy()

    def list(
        self,
        statuses: Iterable[AlertStatus] | None = None,
        rule_id: int | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Matching alerts, newest first."""
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            found = [
                a.model_copy()
                for a in sorted(self._alerts.values(), key=lambda a: a.id, reverse=True)
                if (wanted is None or a.status in wanted)
                and (rule_id is None or a.rule_id == rule_id)
            ]
        return found[:limit] if limit is not None else found

    def prune(self, keep: int) -> int:
        """Drop the oldest resolved alerts beyond *keep*; returns how many."""
        if keep <= 0:
            return 0
        with self._lock:
            terminal = sorted(
                (a.id for a in self._alerts.values() if a.status in _TERMINAL),
                reverse=True,
            )
            stale = terminal[keep:]
            for alert_id in stale:
                del self._alerts[alert_id]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
