"""Tests for QueueScanner — report parsing and year inference."""

from __future__ import annotations

import datetime

from relayctl.queue.scanner import QueueScanner, ScanState
from relayctl.queue.types import QueueStatus, QueueSummary

REPORT = """\
-Queue ID-  --Size-- ----Arrival Time---- -Sender/Recipient-------
3F2A1B4C5D*     1234 Wed Jan 15 10:30:00  sender@example.com
                                          rcpt@example.com

4A5B6C7D8E!     5678 Wed Jan 15 10:35:00  other@example.com
                                          rcpt2@example.com
                                          rcpt3@example.com

5B6C7D8E9F      9012 Wed Jan 15 10:40:00  third@example.com
   (connect to mx.example.net[192.0.2.1]:25: Connection timed out)
                                          rcpt4@example.com

-- 15 Kbytes in 3 Requests.
"""

NOW = datetime.datetime(2025, 1, 20, 12, 0, tzinfo=datetime.UTC)


def _scanner(now: datetime.datetime = NOW) -> QueueScanner:
    return QueueScanner(clock=lambda: now)


class TestScan:
    def test_statuses_and_summary(self) -> None:
        entries = _scanner().scan(REPORT)
        assert [(e.queue_id, e.status) for e in entries] == [
            ("3F2A1B4C5D", QueueStatus.ACTIVE),
            ("4A5B6C7D8E", QueueStatus.HOLD),
            ("5B6C7D8E9F", QueueStatus.DEFERRED),
        ]
        summary = QueueSummary.from_entries(entries)
        assert (summary.active, summary.deferred, summary.hold, summary.total) == (1, 1, 1, 3)

    def test_fields(self) -> None:
        first, second, third = _scanner().scan(REPORT)
        assert first.size == 1234
        assert first.sender == "sender@example.com"
        assert first.recipients == ["rcpt@example.com"]
        assert first.reason is None
        assert first.arrival_time == datetime.datetime(2025, 1, 15, 10, 30, tzinfo=datetime.UTC)
        assert second.recipients == ["rcpt2@example.com", "rcpt3@example.com"]
        assert third.reason == "connect to mx.example.net[192.0.2.1]:25: Connection timed out"
        assert third.recipients == ["rcpt4@example.com"]

    def test_first_reason_wins(self) -> None:
        report = (
            "5B6C7D8E9F      9012 Wed Jan 15 10:40:00  a@example.com\n"
            "   (first problem)\n"
            "                                          b@example.com\n"
            "   (second problem)\n"
            "                                          c@example.com\n"
        )
        (entry,) = _scanner().scan(report)
        assert entry.reason == "first problem"
        assert entry.recipients == ["b@example.com", "c@example.com"]

    def test_empty_queue(self) -> None:
        assert _scanner().scan("Mail queue is empty\n") == []
        assert _scanner().scan("") == []

    def test_orphan_lines_ignored(self) -> None:
        report = "                 stray@example.com\n(no header yet)\n"
        assert _scanner().scan(report) == []


class TestStates:
    def test_transitions(self) -> None:
        scanner = _scanner()
        assert scanner.state == ScanState.IDLE
        scanner.feed("3F2A1B4C5D*     1234 Wed Jan 15 10:30:00  s@example.com")
        assert scanner.state == ScanState.HEADER_SEEN
        scanner.feed("                                          r@example.com")
        assert scanner.state == ScanState.IN_RECIPIENTS
        entries = scanner.finish()
        assert scanner.state == ScanState.IDLE
        assert len(entries) == 1


class TestArrivalYear:
    def test_december_entry_listed_in_january(self) -> None:
        now = datetime.datetime(2026, 1, 2, 9, 0, tzinfo=datetime.UTC)
        report = "3F2A1B4C5D*     1234 Wed Dec 31 23:00:00  s@example.com\n"
        (entry,) = _scanner(now).scan(report)
        assert entry.arrival_time == datetime.datetime(2025, 12, 31, 23, 0, tzinfo=datetime.UTC)

    def test_tomorrow_stays_in_current_year(self) -> None:
        now = datetime.datetime(2026, 3, 10, 23, 30, tzinfo=datetime.UTC)
        report = "3F2A1B4C5D*     1234 Wed Mar 11 00:10:00  s@example.com\n"
        (entry,) = _scanner(now).scan(report)
        assert entry.arrival_time is not None
        assert entry.arrival_time.year == 2026

    def test_leap_day_in_non_leap_year(self) -> None:
        now = datetime.datetime(2025, 3, 1, 8, 0, tzinfo=datetime.UTC)
        report = "3F2A1B4C5D*     1234 Thu Feb 29 10:00:00  s@example.com\n"
        (entry,) = _scanner(now).scan(report)
        assert entry.arrival_time == datetime.datetime(2024, 2, 29, 10, 0, tzinfo=datetime.UTC)

    def test_single_digit_day_padding(self) -> None:
        report = "3F2A1B4C5D*     1234 Sun Jan  5 08:01:02  s@example.com\n"
        (entry,) = _scanner().scan(report)
        assert entry.arrival_time == datetime.datetime(2025, 1, 5, 8, 1, 2, tzinfo=datetime.UTC)
