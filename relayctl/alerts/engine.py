"""AlertEngine — periodic rule evaluation and the alert state machine.

Per rule::

    not firing ──condition──▶ firing ──condition clears──▶ resolved
                                │
                                ├─ acknowledge ─▶ acknowledged ─clears─▶ resolved
                                └─ silence ─────▶ silenced ──expiry──▶ resolved

Acknowledged alerts and alerts under an active silence count as open: the
rule does not fire again until they are resolved.
"""

from __future__ import annotations

import asyncio
import datetime
import inspect
import threading
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from relayctl.alerts.notifier import Notifier
from relayctl.alerts.store import AlertStore, RuleStore
from relayctl.alerts.types import Alert, AlertRule, AlertStatus, MetricsSnapshot, RuleType
from relayctl.core.config import AlertsConfig
from relayctl.core.exceptions import ConflictError, ValidationError

logger = structlog.get_logger(__name__)

MetricsFn = Callable[[], MetricsSnapshot | Awaitable[MetricsSnapshot]]
Clock = Callable[[], datetime.datetime]

_OPEN = (AlertStatus.FIRING, AlertStatus.ACKNOWLEDGED, AlertStatus.SILENCED)
_RESOLVABLE = (AlertStatus.FIRING, AlertStatus.ACKNOWLEDGED)
_ACTIVE = (AlertStatus.FIRING, AlertStatus.ACKNOWLEDGED)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


# rule type -> (metric getter, context key, message)
_CHECKS: dict[str, tuple[Callable[[MetricsSnapshot], float], str, str]] = {
    RuleType.QUEUE_GROWTH: (
        lambda m: m.queue_total, "queueSize", "Mail queue size exceeds threshold",
    ),
    RuleType.DEFERRED_SPIKE: (
        lambda m: m.queue_deferred, "deferredCount", "Deferred mail count exceeds threshold",
    ),
    RuleType.AUTH_FAILURES: (
        lambda m: m.auth_failures, "failureCount", "Authentication failures exceed threshold",
    ),
    RuleType.TLS_FAILURES: (
        lambda m: m.tls_failures, "failureCount", "TLS connection failures exceed threshold",
    ),
    RuleType.BOUNCE_RATE: (
        lambda m: m.bounce_rate, "bounceRate", "Bounce rate exceeds threshold",
    ),
    RuleType.CONNECTION_RATE: (
        lambda m: m.connection_rate, "connectionRate", "Connection rate exceeds threshold",
    ),
}


def evaluate_rule(
    rule: AlertRule,
    metrics: MetricsSnapshot,
) -> tuple[bool, str, dict[str, Any]]:
    """Compare one rule against *metrics* (strict greater-than).

    Returns:
        ``(triggered, message, context)``; unknown rule types never trigger.
    """
    check = _CHECKS.get(rule.type)
    if check is None:
        return False, "", {}
    getter, key, message = check
    value = getter(metrics)
    context = {key: value, "threshold": rule.threshold_value}
    if value > rule.threshold_value:
        return True, message, context
    return False, "", context


class AlertEngine:
    """Evaluates rules against the latest metrics on a fixed interval.

    Usage::

        engine = AlertEngine(notifier=notifier, config=settings.alerts)
        await engine.start()
        engine.update_metrics(MetricsSnapshot(queue_active=150))
        ...
        await engine.stop()
    """

    def __init__(
        self,
        rules: RuleStore | None = None,
        alerts: AlertStore | None = None,
        notifier: Notifier | None = None,
        config: AlertsConfig | None = None,
        metrics_fn: MetricsFn | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or AlertsConfig()
        self._rule_store = rules or RuleStore()
        self._alerts = alerts or AlertStore()
        self._notifier = notifier or Notifier(max_inflight=self._config.max_inflight_notifications)
        self._metrics_fn = metrics_fn
        self._clock = clock or _utcnow

        # Evaluated rule set and metrics, swapped under _lock.
        self._lock = threading.Lock()
        self._rules: list[AlertRule] = self._rule_store.list()
        self._metrics = MetricsSnapshot()
        # Serializes alert transitions (fire, resolve, ack, silence, expiry).
        self._transition_lock = threading.RLock()

        self._eval_task: asyncio.Task[None] | None = None
        self._cleanup_task: asyncio.Task[None] | None = None
        self._running = False
        self._tick_count = 0

    # ── Properties ───────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        """Number of completed evaluation ticks."""
        return self._tick_count

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def metrics(self) -> MetricsSnapshot:
        with self._lock:
            return self._metrics

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the evaluation and cleanup loops."""
        if self._running:
            return
        self.reload_rules()
        self._running = True
        self._eval_task = asyncio.create_task(self._eval_loop())
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            "alert_engine_started",
            rules=len(self._rules),
            eval_interval=self._config.eval_interval_secs,
        )

    async def stop(self) -> None:
        """Stop both loops and cancel in-flight notifications."""
        self._running = False
        for task in (self._eval_task, self._cleanup_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._eval_task = None
        self._cleanup_task = None
        await self._notifier.cancel_inflight()
        logger.info("alert_engine_stopped", ticks=self._tick_count)

    async def _eval_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._config.eval_interval_secs)
            except asyncio.CancelledError:
                break
            try:
                await self.evaluate()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("alert_evaluation_error")

    async def _cleanup_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._config.cleanup_interval_secs)
            except asyncio.CancelledError:
                break
            try:
                self.cleanup()
            except Exception:
                logger.exception("alert_cleanup_error")

    # ── Metrics & rules ──────────────────────────────────────────

    def update_metrics(self, snapshot: MetricsSnapshot) -> None:
        """Metrics-ingestion entry point; safe to call from any thread."""
        with self._lock:
            self._metrics = snapshot

    def reload_rules(self) -> int:
        """Make rule-store edits visible to the evaluator."""
        rules = self._rule_store.list()
        with self._lock:
            self._rules = rules
        logger.info("alert_rules_loaded", count=len(rules))
        return len(rules)

    def list_rules(self) -> list[AlertRule]:
        return self._rule_store.list()

    def get_rule(self, rule_id: int) -> AlertRule:
        return self._rule_store.get(rule_id)

    def create_rule(self, rule: AlertRule) -> AlertRule:
        created = self._rule_store.create(rule)
        logger.info("alert_rule_created", rule_id=created.id, name=created.name)
        return created

    def update_rule(self, rule_id: int, changes: dict[str, Any]) -> AlertRule:
        updated = self._rule_store.update(rule_id, changes)
        logger.info("alert_rule_updated", rule_id=rule_id, fields=sorted(changes))
        return updated

    def delete_rule(self, rule_id: int) -> None:
        self._rule_store.delete(rule_id)
        logger.info("alert_rule_deleted", rule_id=rule_id)

    # ── Evaluation ───────────────────────────────────────────────

    async def evaluate(self) -> list[Alert]:
        """Run one tick. Returns the alerts fired by it."""
        if self._metrics_fn is not None:
            snapshot = self._metrics_fn()
            if inspect.isawaitable(snapshot):
                snapshot = await snapshot
            self.update_metrics(snapshot)

        with self._lock:
            rules = list(self._rules)
            metrics = self._metrics

        fired: list[Alert] = []
        for rule in rules:
            if not rule.enabled:
                continue
            triggered, message, context = evaluate_rule(rule, metrics)
            if triggered:
                alert = self._fire(rule, message, context)
                if alert is not None:
                    fired.append(alert)
            else:
                self._resolve(rule)

        self._tick_count += 1
        return fired

    def _fire(self, rule: AlertRule, message: str, context: dict[str, Any]) -> Alert | None:
        now = self._clock()
        with self._transition_lock:
            for existing in self._alerts.list(_OPEN, rule_id=rule.id):
                if existing.status != AlertStatus.SILENCED:
                    return None
                if existing.silenced_until is not None and existing.silenced_until > now:
                    return None

            alert = self._alerts.create(
                rule_id=rule.id,
                rule_name=rule.name,
                rule_type=rule.type,
                severity=rule.severity,
                status=AlertStatus.FIRING,
                message=message,
                context=context,
                triggered_at=now,
            )

        logger.warning(
            "alert_fired",
            alert_id=alert.id,
            rule=rule.name,
            severity=rule.severity.value,
            message=message,
            context=context,
        )
        self._dispatch(alert)
        return alert

    def _dispatch(self, alert: Alert) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("notification_skipped_no_loop", alert_id=alert.id)
            return
        self._notifier.submit(alert)

    def _resolve(self, rule: AlertRule) -> None:
        now = self._clock()
        with self._transition_lock:
            for alert in self._alerts.list(_RESOLVABLE, rule_id=rule.id):
                alert.status = AlertStatus.RESOLVED
                alert.resolved_at = now
                self._alerts.save(alert)
                logger.info("alert_resolved", alert_id=alert.id, rule=rule.name)

    # ── Operator actions ─────────────────────────────────────────

    def acknowledge(self, alert_id: int, actor: str, note: str = "") -> Alert:
        """Acknowledge a firing alert; any other status is a conflict."""
        with self._transition_lock:
            alert = self._alerts.get(alert_id)
            if alert.status != AlertStatus.FIRING:
                raise ConflictError(
                    f"alert {alert_id} is {alert.status.value}, only firing alerts can be acknowledged",
                )
            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_at = self._clock()
            alert.acknowledged_by = actor
            alert.note = note
            self._alerts.save(alert)
        logger.info("alert_acknowledged", alert_id=alert_id, actor=actor)
        return alert

    def silence(self, alert_id: int, duration_minutes: int) -> Alert:
        """Silence an alert for *duration_minutes*, whatever its status."""
        if duration_minutes <= 0:
            raise ValidationError("silence duration must be a positive number of minutes")
        with self._transition_lock:
            alert = self._alerts.get(alert_id)
            alert.status = AlertStatus.SILENCED
            alert.silenced_until = self._clock() + datetime.timedelta(minutes=duration_minutes)
            self._alerts.save(alert)
        logger.info(
            "alert_silenced",
            alert_id=alert_id,
            until=alert.silenced_until.isoformat(),
        )
        return alert

    def cleanup(self) -> tuple[int, int]:
        """Resolve expired silences and prune old history.

        Returns:
            ``(expired, pruned)`` counts.
        """
        now = self._clock()
        expired = 0
        with self._transition_lock:
            for alert in self._alerts.list([AlertStatus.SILENCED]):
                if alert.silenced_until is not None and alert.silenced_until <= now:
                    alert.status = AlertStatus.RESOLVED
                    alert.resolved_at = now
                    self._alerts.save(alert)
                    expired += 1
        pruned = self._alerts.prune(self._config.history_limit)
        if expired or pruned:
            logger.info("alert_cleanup", expired=expired, pruned=pruned)
        return expired, pruned

    # ── Queries ──────────────────────────────────────────────────

    def list_alerts(self, status: AlertStatus | str | None = None, limit: int = 100) -> list[Alert]:
        statuses = [AlertStatus(status)] if status else None
        return self._alerts.list(statuses, limit=limit)

    def active_alerts(self) -> list[Alert]:
        """Firing and acknowledged alerts, newest first."""
        return self._alerts.list(_ACTIVE)

    def get_alert(self, alert_id: int) -> Alert:
        return self._alerts.get(alert_id)
