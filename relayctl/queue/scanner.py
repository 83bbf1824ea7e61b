"""QueueScanner — explicit state machine over the queue-listing report.

Report layout (``mailq`` / ``postqueue -p``)::

    -Queue ID-  --Size-- ----Arrival Time---- -Sender/Recipient-------
    3F2A1B4C5D*     1234 Wed Jan 15 10:30:00  sender@example.com
                                              rcpt@example.com
    4A5B6C7D8E!     5678 Wed Jan 15 10:35:00  other@example.com
    (connect to mx.example.net[192.0.2.1]:25: Connection timed out)
                                              rcpt2@example.com

    -- 2 Kbytes in 2 Requests.
"""

from __future__ import annotations

import datetime
import re
from collections.abc import Callable, Iterable
from enum import IntEnum

from relayctl.queue.types import QueueEntry, QueueStatus

HEADER_RE = re.compile(
    r"^(?P<id>[A-F0-9]{10,12})(?P<marker>[*!]?)\s+(?P<size>\d+)\s+"
    r"(?P<arrival>[A-Z][a-z]{2}\s+[A-Z][a-z]{2}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2})\s+"
    r"(?P<sender>\S+)\s*$"
)
REASON_RE = re.compile(r"^\s*\((?P<reason>.+)\)\s*$")
RECIPIENT_RE = re.compile(r"^\s+(?P<rcpt>\S+)\s*$")

_MARKERS = {"*": QueueStatus.ACTIVE, "!": QueueStatus.HOLD, "": QueueStatus.DEFERRED}
_SKIP_PREFIXES = ("-Queue ID-", "-- ")
EMPTY_MARKER = "Mail queue is empty"


class ScanState(IntEnum):
    IDLE = 0
    HEADER_SEEN = 1
    IN_RECIPIENTS = 2


class QueueScanner:
    """Turns report lines into :class:`QueueEntry` records.

    The report carries no year. It is taken from *clock*; a result more than
    one day in the future belongs to the previous year (a December message
    listed in January).
    """

    def __init__(self, clock: Callable[[], datetime.datetime] | None = None) -> None:
        self._clock = clock or datetime.datetime.now
        self.state = ScanState.IDLE
        self._current: QueueEntry | None = None
        self._entries: list[QueueEntry] = []

    def scan(self, report: str | Iterable[str]) -> list[QueueEntry]:
        lines = report.splitlines() if isinstance(report, str) else report
        self._reset()
        for line in lines:
            self.feed(line)
        return self.finish()

    def feed(self, line: str) -> None:
        line = line.rstrip("\r\n")
        if not line.strip() or line.startswith(_SKIP_PREFIXES) or EMPTY_MARKER in line:
            return

        header = HEADER_RE.match(line)
        if header is not None:
            self._close()
            self._current = self._entry_from(header)
            self.state = ScanState.HEADER_SEEN
            return

        if self.state == ScanState.IDLE or self._current is None:
            return

        reason = REASON_RE.match(line)
        if reason is not None:
            if self._current.reason is None:
                self._current.reason = reason.group("reason")
            return

        rcpt = RECIPIENT_RE.match(line)
        if rcpt is not None:
            self._current.recipients.append(rcpt.group("rcpt"))
            self.state = ScanState.IN_RECIPIENTS

    def finish(self) -> list[QueueEntry]:
        self._close()
        entries, self._entries = self._entries, []
        return entries

    # ── Internal ────────────────────────────────────────────────

    def _reset(self) -> None:
        self.state = ScanState.IDLE
        self._current = None
        self._entries = []

    def _close(self) -> None:
        if self._current is not None:
            self._entries.append(self._current)
        self._current = None
        self.state = ScanState.IDLE

    def _entry_from(self, match: re.Match[str]) -> QueueEntry:
        return QueueEntry(
            queue_id=match.group("id"),
            status=_MARKERS[match.group("marker")],
            size=int(match.group("size")),
            arrival_time=self._arrival(match.group("arrival")),
            sender=match.group("sender"),
        )

    def _arrival(self, text: str) -> datetime.datetime | None:
        # "Wed Jan 15 10:30:00" -> drop the weekday, it cannot be checked without a year
        _, _, rest = " ".join(text.split()).partition(" ")
        now = self._clock()
        try:
            parsed = datetime.datetime.strptime(f"{now.year} {rest}", "%Y %b %d %H:%M:%S")
        except ValueError:
            # Feb 29 listed in a non-leap current year
            try:
                parsed = datetime.datetime.strptime(f"{now.year - 1} {rest}", "%Y %b %d %H:%M:%S")
            except ValueError:
                return None
            return parsed.replace(tzinfo=now.tzinfo)

        parsed = parsed.replace(tzinfo=now.tzinfo)
        if parsed - now > datetime.timedelta(days=1):
            try:
                parsed = parsed.replace(year=parsed.year - 1)
            except ValueError:
                return None
        return parsed
