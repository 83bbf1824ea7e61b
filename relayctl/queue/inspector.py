"""QueueInspector — read-only view of the MTA delivery queue."""

from __future__ import annotations

import datetime
import re
from collections.abc import Callable

import structlog

from relayctl.core.config import QueueConfig
from relayctl.core.exceptions import ExternalToolError, InjectionRejectedError, NotFoundError
from relayctl.postfix.tools import CommandRunner, SubprocessRunner
from relayctl.queue.scanner import EMPTY_MARKER, QueueScanner
from relayctl.queue.types import QueueEntry, QueueStatus, QueueSummary

logger = structlog.stdlib.get_logger()

QUEUE_ID_PATTERN = re.compile(r"^[A-F0-9]{10,12}$")
HAS_HEADER = re.compile(r"^[A-F0-9]{10,12}[*!]?\s", re.MULTILINE)


def validate_queue_id(queue_id: str) -> str:
    """Return *queue_id* unchanged or raise :class:`InjectionRejectedError`."""
    if not isinstance(queue_id, str) or not QUEUE_ID_PATTERN.fullmatch(queue_id):
        logger.warning("queue_id_rejected", queue_id=repr(queue_id)[:40])
        raise InjectionRejectedError(
            f"invalid queue ID format: {queue_id!r} (expected 10-12 hex characters)",
        )
    return queue_id


class QueueInspector:
    """Lists and summarizes queue entries by scanning the listing report.

    Usage::

        inspector = QueueInspector()
        held = inspector.list(QueueStatus.HOLD)
        print(inspector.summary().total)
    """

    def __init__(
        self,
        config: QueueConfig | None = None,
        runner: CommandRunner | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        from relayctl.core.config import get_settings

        self._config = config or get_settings().queue
        self._runner = runner or SubprocessRunner()
        self._clock = clock

    def list(self, status_filter: QueueStatus | str | None = None) -> list[QueueEntry]:
        result = self._runner.run(list(self._config.list_command))
        output = result.output
        if EMPTY_MARKER in output or not output.strip():
            return []
        if not result.ok and not HAS_HEADER.search(output):
            raise ExternalToolError(result.argv, output, result.returncode)

        entries = QueueScanner(self._clock).scan(output)
        if status_filter:
            wanted = QueueStatus(status_filter)
            entries = [e for e in entries if e.status == wanted]
        return entries

    def get(self, queue_id: str) -> QueueEntry:
        validate_queue_id(queue_id)
        for entry in self.list():
            if entry.queue_id == queue_id:
                return entry
        raise NotFoundError(f"message not found: {queue_id}")

    def find(self, queue_id: str) -> QueueEntry | None:
        """Like :meth:`get` but returns None for a message no longer queued."""
        try:
            return self.get(queue_id)
        except NotFoundError:
            return None

    def summary(self) -> QueueSummary:
        return QueueSummary.from_entries(self.list())

