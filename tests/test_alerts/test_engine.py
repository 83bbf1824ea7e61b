"""Tests for AlertEngine — evaluation, single firing, lifecycle, loops."""

from __future__ import annotations

import asyncio
import datetime

import pytest

from relayctl.alerts.channels import NotificationChannel
from relayctl.alerts.engine import AlertEngine, evaluate_rule
from relayctl.alerts.notifier import Notifier
from relayctl.alerts.store import AlertStore, RuleStore
from relayctl.alerts.types import (
    Alert,
    AlertRule,
    AlertStatus,
    ChannelType,
    MetricsSnapshot,
    NotificationChannelConfig,
    RuleType,
    Severity,
)
from relayctl.core.config import AlertsConfig
from relayctl.core.exceptions import ConflictError, NotFoundError, ValidationError


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(self) -> None:
        super().__init__(NotificationChannelConfig(id=1, name="fake", type=ChannelType.WEBHOOK))
        self.sent: list[Alert] = []

    async def send(self, alert: Alert) -> bool:
        self.sent.append(alert)
        return True


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.UTC)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kw: float) -> None:
        self.now += datetime.timedelta(**kw)


def _rule(**kw: object) -> AlertRule:
    defaults: dict[str, object] = {
        "name": "Queue Growth Warning",
        "type": RuleType.QUEUE_GROWTH,
        "threshold_value": 100,
        "threshold_duration": 300,
        "severity": Severity.WARNING,
    }
    defaults.update(kw)
    return AlertRule(**defaults)  # type: ignore[arg-type]


def _engine(
    *rules: AlertRule,
    clock: FakeClock | None = None,
    **config: object,
) -> tuple[AlertEngine, FakeChannel]:
    ch = FakeChannel()
    engine = AlertEngine(
        rules=RuleStore(rules or [_rule()]),
        alerts=AlertStore(),
        notifier=Notifier(channels=[ch]),
        config=AlertsConfig(**config),  # type: ignore[arg-type]
        clock=clock or FakeClock(),
    )
    return engine, ch


def _queue(total: int) -> MetricsSnapshot:
    return MetricsSnapshot(queue_active=total)


# ── Rule evaluation ─────────────────────────────────────────────


class TestEvaluateRule:
    def test_queue_growth_context(self) -> None:
        triggered, message, context = evaluate_rule(_rule(), _queue(150))
        assert triggered is True
        assert message == "Mail queue size exceeds threshold"
        assert context == {"queueSize": 150, "threshold": 100}

    def test_strictly_greater(self) -> None:
        assert evaluate_rule(_rule(), _queue(100))[0] is False

    def test_queue_total_sums_all_states(self) -> None:
        metrics = MetricsSnapshot(queue_active=40, queue_deferred=40, queue_hold=40)
        assert evaluate_rule(_rule(), metrics)[0] is True

    @pytest.mark.parametrize(
        ("rule_type", "metrics", "key"),
        [
            (RuleType.DEFERRED_SPIKE, MetricsSnapshot(queue_deferred=11), "deferredCount"),
            (RuleType.AUTH_FAILURES, MetricsSnapshot(auth_failures=11), "failureCount"),
            (RuleType.TLS_FAILURES, MetricsSnapshot(tls_failures=11), "failureCount"),
            (RuleType.BOUNCE_RATE, MetricsSnapshot(bounce_rate=11.5), "bounceRate"),
            (RuleType.CONNECTION_RATE, MetricsSnapshot(connection_rate=12.0), "connectionRate"),
        ],
    )
    def test_other_types(self, rule_type: RuleType, metrics: MetricsSnapshot, key: str) -> None:
        triggered, _, context = evaluate_rule(_rule(type=rule_type, threshold_value=10), metrics)
        assert triggered is True
        assert key in context

    def test_unknown_type_never_fires(self) -> None:
        assert evaluate_rule(_rule(type="service_check", threshold_value=0), _queue(999)) == (
            False, "", {},
        )


# ── Firing / resolution ─────────────────────────────────────────


class TestFiring:
    async def test_fire_hold_resolve_scenario(self) -> None:
        engine, ch = _engine()

        engine.update_metrics(_queue(150))
        fired = await engine.evaluate()
        assert len(fired) == 1
        assert fired[0].context == {"queueSize": 150, "threshold": 100}
        assert fired[0].status == AlertStatus.FIRING

        engine.update_metrics(_queue(200))
        assert await engine.evaluate() == []
        assert len(engine.active_alerts()) == 1

        engine.update_metrics(_queue(50))
        await engine.evaluate()
        assert engine.active_alerts() == []
        resolved = engine.get_alert(fired[0].id)
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolved_at is not None

        await engine.notifier.drain()
        assert [a.id for a in ch.sent] == [fired[0].id]

    async def test_fires_again_after_resolution(self) -> None:
        engine, _ = _engine()
        for total in (150, 50, 150):
            engine.update_metrics(_queue(total))
            await engine.evaluate()
        alerts = engine.list_alerts()
        assert [a.status for a in alerts] == [AlertStatus.FIRING, AlertStatus.RESOLVED]

    async def test_disabled_rule_skipped(self) -> None:
        engine, _ = _engine(_rule(enabled=False))
        engine.update_metrics(_queue(1000))
        assert await engine.evaluate() == []

    async def test_each_rule_fires_independently(self) -> None:
        engine, _ = _engine(
            _rule(),
            _rule(name="Queue Growth Critical", threshold_value=500, severity=Severity.CRITICAL),
        )
        engine.update_metrics(_queue(600))
        fired = await engine.evaluate()
        assert sorted(a.severity for a in fired) == [Severity.CRITICAL, Severity.WARNING]

    async def test_metrics_fn_polled_each_tick(self) -> None:
        calls = 0

        async def _collect() -> MetricsSnapshot:
            nonlocal calls
            calls += 1
            return _queue(150)

        engine = AlertEngine(
            rules=RuleStore([_rule()]),
            notifier=Notifier(),
            metrics_fn=_collect,
            clock=FakeClock(),
        )
        fired = await engine.evaluate()
        assert calls == 1
        assert len(fired) == 1
        assert engine.metrics.queue_active == 150
        assert engine.tick_count == 1


# ── Operator actions ────────────────────────────────────────────


class TestAcknowledge:
    async def test_acknowledge_firing(self) -> None:
        engine, _ = _engine()
        engine.update_metrics(_queue(150))
        (alert,) = await engine.evaluate()

        acked = engine.acknowledge(alert.id, actor="ops", note="looking")
        assert acked.status == AlertStatus.ACKNOWLEDGED
        assert acked.acknowledged_by == "ops"
        assert acked.note == "looking"
        assert acked.acknowledged_at is not None

        # still breaching: acknowledged alert suppresses a new firing
        assert await engine.evaluate() == []
        assert engine.active_alerts()[0].id == alert.id

    async def test_acknowledge_twice_conflicts(self) -> None:
        engine, _ = _engine()
        engine.update_metrics(_queue(150))
        (alert,) = await engine.evaluate()
        engine.acknowledge(alert.id, actor="ops")
        with pytest.raises(ConflictError):
            engine.acknowledge(alert.id, actor="ops")

    async def test_acknowledged_alert_resolves(self) -> None:
        engine, _ = _engine()
        engine.update_metrics(_queue(150))
        (alert,) = await engine.evaluate()
        engine.acknowledge(alert.id, actor="ops")
        engine.update_metrics(_queue(10))
        await engine.evaluate()
        assert engine.get_alert(alert.id).status == AlertStatus.RESOLVED

    def test_unknown_alert(self) -> None:
        engine, _ = _engine()
        with pytest.raises(NotFoundError):
            engine.acknowledge(99, actor="ops")


class TestSilence:
    async def test_silence_suppresses_until_expiry(self) -> None:
        clock = FakeClock()
        engine, _ = _engine(clock=clock)
        engine.update_metrics(_queue(150))
        (alert,) = await engine.evaluate()

        silenced = engine.silence(alert.id, duration_minutes=30)
        assert silenced.status == AlertStatus.SILENCED
        assert silenced.silenced_until == clock.now + datetime.timedelta(minutes=30)

        clock.advance(minutes=10)
        assert await engine.evaluate() == []
        assert engine.cleanup() == (0, 0)

        clock.advance(minutes=25)
        assert engine.cleanup() == (1, 0)
        assert engine.get_alert(alert.id).status == AlertStatus.RESOLVED

        refired = await engine.evaluate()
        assert len(refired) == 1
        assert refired[0].id != alert.id

    async def test_silenced_alert_not_resolved_by_evaluation(self) -> None:
        engine, _ = _engine()
        engine.update_metrics(_queue(150))
        (alert,) = await engine.evaluate()
        engine.silence(alert.id, duration_minutes=5)
        engine.update_metrics(_queue(0))
        await engine.evaluate()
        assert engine.get_alert(alert.id).status == AlertStatus.SILENCED

    def test_non_positive_duration_rejected(self) -> None:
        engine, _ = _engine()
        with pytest.raises(ValidationError):
            engine.silence(1, duration_minutes=0)


class TestCleanup:
    async def test_prunes_resolved_history(self) -> None:
        engine, _ = _engine(history_limit=2)
        for _ in range(4):
            engine.update_metrics(_queue(150))
            await engine.evaluate()
            engine.update_metrics(_queue(0))
            await engine.evaluate()
        assert engine.cleanup() == (0, 2)
        assert len(engine.list_alerts()) == 2


# ── Rules ───────────────────────────────────────────────────────


class TestRules:
    async def test_edits_visible_only_after_reload(self) -> None:
        engine, _ = _engine()
        rule = engine.list_rules()[0]
        engine.update_rule(rule.id, {"threshold_value": 1000})
        engine.update_metrics(_queue(150))

        assert len(await engine.evaluate()) == 1
        engine.update_metrics(_queue(0))
        await engine.evaluate()

        assert engine.reload_rules() == 1
        engine.update_metrics(_queue(150))
        assert await engine.evaluate() == []

    def test_crud(self) -> None:
        engine, _ = _engine()
        created = engine.create_rule(_rule(name="TLS", type=RuleType.TLS_FAILURES, threshold_value=5))
        assert engine.get_rule(created.id).name == "TLS"
        engine.delete_rule(created.id)
        with pytest.raises(NotFoundError):
            engine.get_rule(created.id)

    def test_update_rejects_immutable_fields(self) -> None:
        engine, _ = _engine()
        with pytest.raises(ValueError):
            engine.update_rule(1, {"id": 7})

    def test_default_rules_seeded(self) -> None:
        engine = AlertEngine()
        types = {r.type for r in engine.list_rules()}
        assert types == {
            RuleType.QUEUE_GROWTH,
            RuleType.DEFERRED_SPIKE,
            RuleType.AUTH_FAILURES,
            RuleType.TLS_FAILURES,
        }


# ── Lifecycle ───────────────────────────────────────────────────


class TestLifecycle:
    async def test_start_runs_ticks_and_stop(self) -> None:
        engine, ch = _engine(eval_interval_secs=0.01, cleanup_interval_secs=0.01)
        engine.update_metrics(_queue(150))
        await engine.start()
        assert engine.running
        for _ in range(100):
            if engine.tick_count >= 2:
                break
            await asyncio.sleep(0.01)
        await engine.stop()
        assert not engine.running
        assert engine.tick_count >= 2
        assert len(engine.list_alerts()) == 1

    async def test_stop_without_start(self) -> None:
        engine, _ = _engine()
        await engine.stop()
        assert not engine.running

    async def test_loop_survives_evaluation_errors(self) -> None:
        calls = 0

        def _broken() -> MetricsSnapshot:
            nonlocal calls
            calls += 1
            raise RuntimeError("collector down")

        engine = AlertEngine(
            rules=RuleStore([_rule()]),
            notifier=Notifier(),
            config=AlertsConfig(eval_interval_secs=0.01, cleanup_interval_secs=10),
            metrics_fn=_broken,
        )
        await engine.start()
        for _ in range(100):
            if calls >= 2:
                break
            await asyncio.sleep(0.01)
        await engine.stop()
        assert calls >= 2
