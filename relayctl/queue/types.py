"""Queue data types."""

from __future__ import annotations

import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class QueueStatus(StrEnum):
    ACTIVE = "active"
    DEFERRED = "deferred"
    HOLD = "hold"


class QueueEntry(BaseModel):
    """One message currently held by the MTA's delivery queue."""

    queue_id: str
    status: QueueStatus
    size: int = 0
    arrival_time: datetime.datetime | None = None
    sender: str = ""
    recipients: list[str] = Field(default_factory=list)
    reason: str | None = None


class QueueSummary(BaseModel):
    active: int = 0
    deferred: int = 0
    hold: int = 0

    @property
    def total(self) -> int:
        return self.active + self.deferred + self.hold

    @classmethod
    def from_entries(cls, entries: list[QueueEntry]) -> QueueSummary:
        summary = cls()
        for entry in entries:
            if entry.status == QueueStatus.ACTIVE:
                summary.active += 1
            elif entry.status == QueueStatus.DEFERRED:
                summary.deferred += 1
            elif entry.status == QueueStatus.HOLD:
                summary.hold += 1
        return summary
