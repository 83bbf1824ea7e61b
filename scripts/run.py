#!/usr/bin/env python3
"""Alert daemon entrypoint — polls the queue and runs the alert engine.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from relayctl.alerts.factory import create_alert_stack
from relayctl.alerts.types import MetricsSnapshot
from relayctl.core.config import load_settings
from relayctl.core.exceptions import RelayError
from relayctl.core.logging import setup_logging
from relayctl.core.secrets import SecretBox
from relayctl.maps.manager import MapManager
from relayctl.postfix.store import ConfigStore
from relayctl.queue.inspector import QueueInspector

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the engine and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    if not settings.alerts.enabled:
        logger.error("alerts_disabled")
        print("Alerting is disabled (alerts.enabled: false).", file=sys.stderr)
        return 1

    # ── Leftovers of an interrupted map save ─────────────────────
    store = ConfigStore(settings.postfix)
    try:
        MapManager(store, settings.maps).recover()
    except OSError:
        logger.exception("map_recovery_failed")

    # ── Secrets ──────────────────────────────────────────────────
    secret_box: SecretBox | None = None
    passphrase = settings.secrets.passphrase.get_secret_value()
    if passphrase:
        try:
            secret_box = SecretBox(passphrase)
        except RelayError as exc:
            print(f"Invalid secrets passphrase: {exc}", file=sys.stderr)
            return 1

    # ── Metrics source ───────────────────────────────────────────
    inspector = QueueInspector(settings.queue)
    last = MetricsSnapshot()

    async def collect_metrics() -> MetricsSnapshot:
        # Log-derived counters come from the ingestion pipeline through
        # update_metrics(); only the queue figures are refreshed here.
        nonlocal last
        try:
            summary = await asyncio.to_thread(inspector.summary)
        except RelayError:
            logger.exception("queue_metrics_failed")
            return last
        last = MetricsSnapshot.from_queue_summary(
            summary,
            auth_failures=engine.metrics.auth_failures,
            tls_failures=engine.metrics.tls_failures,
            bounce_rate=engine.metrics.bounce_rate,
            connection_rate=engine.metrics.connection_rate,
        )
        return last

    # ── Alert engine + notifier ──────────────────────────────────
    try:
        engine, notifier = create_alert_stack(
            settings.alerts,
            metrics_fn=collect_metrics,
            secret_box=secret_box,
        )
    except (RelayError, ValueError) as exc:
        print(f"Invalid alert configuration: {exc}", file=sys.stderr)
        return 1

    await engine.start()
    logger.info(
        "daemon_running",
        channels=len(notifier.channels),
        rules=len(engine.list_rules()),
    )

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("daemon_shutting_down")
    await engine.stop()
    await notifier.close()

    logger.info(
        "daemon_stopped",
        ticks=engine.tick_count,
        active_alerts=len(engine.active_alerts()),
        dropped_notifications=notifier.dropped,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the relay alert daemon.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
