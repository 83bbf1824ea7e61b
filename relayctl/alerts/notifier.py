"""Notifier — concurrent fan-out of alerts to notification channels."""

from __future__ import annotations

import asyncio

import structlog

from relayctl.alerts.channels import NotificationChannel
from relayctl.alerts.types import Alert

logger = structlog.get_logger(__name__)


class Notifier:
    """Sends alerts to every enabled channel; delivery is at-most-once.

    - :meth:`notify` awaits all channels concurrently; a failing channel is
      logged and never affects its siblings.
    - :meth:`submit` schedules :meth:`notify` without waiting. In-flight
      dispatches are tracked in a bounded set so shutdown can cancel them
      and tests can :meth:`drain` them; over capacity the alert is dropped
      and logged.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        max_inflight: int = 64,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._max_inflight = max_inflight
        self._inflight: set[asyncio.Task[dict[str, bool]]] = set()
        self._dropped = 0

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    @property
    def dropped(self) -> int:
        return self._dropped

    def set_channels(self, channels: list[NotificationChannel]) -> None:
        """Swap the channel list; in-flight sends keep their old channels."""
        self._channels = list(channels)

    # ── Dispatch ────────────────────────────────────────────────

    async def notify(self, alert: Alert) -> dict[str, bool]:
        """Send *alert* to every enabled channel; returns per-channel success."""
        targets = [ch for ch in self._channels if ch.config.enabled]
        if not targets:
            return {}
        results = await asyncio.gather(
            *(self._send_one(ch, alert) for ch in targets),
        )
        return {ch.name: ok for ch, ok in zip(targets, results, strict=True)}

    def submit(self, alert: Alert) -> bool:
        """Schedule :meth:`notify` in the background. False if dropped."""
        if len(self._inflight) >= self._max_inflight:
            self._dropped += 1
            logger.warning(
                "notification_dropped",
                alert_id=alert.id,
                rule=alert.rule_name,
                inflight=len(self._inflight),
            )
            return False
        task = asyncio.create_task(self.notify(alert), name=f"notify-alert-{alert.id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return True

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight dispatches to finish (up to *timeout* seconds)."""
        if not self._inflight:
            return
        await asyncio.wait(set(self._inflight), timeout=timeout)

    async def _send_one(self, ch: NotificationChannel, alert: Alert) -> bool:
        try:
            ok = await ch.send(alert)
        except Exception:
            logger.exception(
                "channel_dispatch_error",
                channel=ch.name,
                alert_id=alert.id,
            )
            return False
        if ok:
            logger.info("notification_sent", channel=ch.name, alert_id=alert.id)
        else:
            logger.warning("notification_failed", channel=ch.name, alert_id=alert.id)
        return ok

    # ── Lifecycle ───────────────────────────────────────────────

    async def cancel_inflight(self) -> int:
        pending = [t for t in self._inflight if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)

    async def close(self) -> None:
        cancelled = await self.cancel_inflight()
        if cancelled:
            logger.info("notifications_cancelled", count=cancelled)
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=ch.name)
