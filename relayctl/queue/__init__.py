"""Queue module — listing, summary and injection-safe queue actions."""

from relayctl.queue.controller import QueueAction, QueueController
from relayctl.queue.inspector import QueueInspector, validate_queue_id
from relayctl.queue.scanner import QueueScanner, ScanState
from relayctl.queue.types import QueueEntry, QueueStatus, QueueSummary

__all__ = [
    "QueueAction",
    "QueueController",
    "QueueEntry",
    "QueueInspector",
    "QueueScanner",
    "QueueStatus",
    "QueueSummary",
    "ScanState",
    "validate_queue_id",
]
