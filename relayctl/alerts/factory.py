"""Convenience factory for wiring the alerting stack."""

from __future__ import annotations

import structlog

from relayctl.alerts.channels import NotificationChannel, build_channel
from relayctl.alerts.engine import AlertEngine, Clock, MetricsFn
from relayctl.alerts.notifier import Notifier
from relayctl.alerts.store import AlertStore, RuleStore
from relayctl.alerts.types import AlertRule, NotificationChannelConfig
from relayctl.core.config import AlertsConfig, ChannelConfig, RuleConfig
from relayctl.core.secrets import SecretBox

logger = structlog.get_logger(__name__)


def channel_config(cfg: ChannelConfig) -> NotificationChannelConfig:
    return NotificationChannelConfig.model_validate(cfg.model_dump())


def rule_from_config(cfg: RuleConfig) -> AlertRule:
    return AlertRule.model_validate(cfg.model_dump())


def build_channels(
    configs: list[ChannelConfig],
    secret_box: SecretBox | None = None,
    timeout_secs: float = 10.0,
) -> list[NotificationChannel]:
    channels: list[NotificationChannel] = []
    for i, cfg in enumerate(configs, start=1):
        resolved = channel_config(cfg)
        if not resolved.id:
            resolved.id = i
        if not resolved.enabled:
            continue
        channels.append(build_channel(resolved, secret_box, timeout_secs))
    return channels


def create_alert_stack(
    config: AlertsConfig,
    metrics_fn: MetricsFn | None = None,
    secret_box: SecretBox | None = None,
    clock: Clock | None = None,
) -> tuple[AlertEngine, Notifier]:
    """Build an engine + notifier from config.

    Rules declared in config seed the rule store; without any, the default
    rule set is used.

    Returns:
        (engine, notifier)
    """
    channels = build_channels(config.channels, secret_box, config.http_timeout_secs)
    notifier = Notifier(channels=channels, max_inflight=config.max_inflight_notifications)

    rules = RuleStore([rule_from_config(r) for r in config.rules])
    engine = AlertEngine(
        rules=rules,
        alerts=AlertStore(),
        notifier=notifier,
        config=config,
        metrics_fn=metrics_fn,
        clock=clock,
    )
    logger.info(
        "alert_stack_created",
        channels=[ch.name for ch in channels],
        rules=len(engine.list_rules()),
    )
    return engine, notifier
