"""QueueController — hold, release, delete, flush and requeue."""

from __future__ import annotations

import re
from enum import StrEnum

import structlog

from relayctl.core.config import QueueConfig
from relayctl.core.exceptions import ExternalToolError, NotFoundError
from relayctl.postfix.tools import CommandResult, CommandRunner, SubprocessRunner
from relayctl.queue.inspector import QueueInspector, validate_queue_id
from relayctl.queue.types import QueueStatus

logger = structlog.stdlib.get_logger()

# postsuper reports e.g. "postsuper: Placed on hold: 1 message"
_COUNT_RE = re.compile(
    r"(?P<verb>Placed on hold|Released from hold|Deleted|Requeued):\s+(?P<n>\d+)\s+message",
)


class QueueAction(StrEnum):
    HOLD = "-h"
    RELEASE = "-H"
    DELETE = "-d"


_VERBS = {
    QueueAction.HOLD: "Placed on hold",
    QueueAction.RELEASE: "Released from hold",
    QueueAction.DELETE: "Deleted",
}


def affected_count(output: str, verb: str) -> int:
    """Messages the tool reports for *verb*.

    postsuper prints a summary line only when it acted on at least one
    message, so silence means zero.
    """
    total = 0
    for match in _COUNT_RE.finditer(output):
        if match.group("verb") == verb:
            total += int(match.group("n"))
    return total


class QueueController:
    """Injection-safe queue actions through the constrained helper.

    Id-scoped actions always run ``[sudo] <helper> <flag> <id>`` with an id
    that already passed :func:`validate_queue_id`; nothing is ever composed
    into a shell string.
    """

    def __init__(
        self,
        config: QueueConfig | None = None,
        runner: CommandRunner | None = None,
        inspector: QueueInspector | None = None,
        use_sudo: bool = True,
    ) -> None:
        from relayctl.core.config import get_settings

        self._config = config or get_settings().queue
        self._runner = runner or SubprocessRunner()
        self._inspector = inspector or QueueInspector(self._config, self._runner)
        self._sudo = ["sudo"] if use_sudo else []

    def hold(self, queue_id: str) -> None:
        """Put a message on hold; holding a held message is a no-op."""
        self._act(QueueAction.HOLD, queue_id)

    def release(self, queue_id: str) -> None:
        """Release a held message; releasing a non-held message is a no-op."""
        self._act(QueueAction.RELEASE, queue_id)

    def delete(self, queue_id: str) -> None:
        """Delete a message; a message that is already gone is NotFound."""
        self._act(QueueAction.DELETE, queue_id)

    def flush_all(self) -> None:
        """Attempt delivery of every queued message now."""
        self._run_checked([self._config.postqueue_path, "-f"], "queue_flushed")

    def requeue_all(self) -> None:
        """Requeue every message (e.g. after a routing change)."""
        self._run_checked([*self._sudo, self._config.postsuper_path, "-r", "ALL"], "queue_requeued")

    # ── Internal ────────────────────────────────────────────────

    def _act(self, action: QueueAction, queue_id: str) -> None:
        validate_queue_id(queue_id)
        result = self._runner.run([*self._sudo, self._config.helper_path, action.value, queue_id])
        if not result.ok:
            raise ExternalToolError(result.argv, result.output, result.returncode)

        count = affected_count(result.output, _VERBS[action])
        if count > 0:
            logger.info("queue_action", action=action.name.lower(), queue_id=queue_id, count=count)
            return

        # The tool matched nothing: decide between no-op and missing message.
        if action == QueueAction.DELETE:
            raise NotFoundError(f"message not found: {queue_id}")
        entry = self._inspector.find(queue_id)
        if entry is None:
            raise NotFoundError(f"message not found: {queue_id}")
        if action == QueueAction.HOLD and entry.status != QueueStatus.HOLD:
            raise ExternalToolError(result.argv, result.output or "message was not held", 0)
        logger.info(
            "queue_action_noop",
            action=action.name.lower(),
            queue_id=queue_id,
            status=entry.status.value,
        )

    def _run_checked(self, argv: list[str], event: str) -> CommandResult:
        result = self._runner.run(argv)
        if not result.ok:
            raise ExternalToolError(result.argv, result.output, result.returncode)
        logger.info(event)
        return result
