"""ConfigApplier — stage, apply and roll back configuration changes.

An apply writes the merged parameters, validates them with the external
checks and only then asks the MTA to reload. A failed validation restores
the parameters that were in place before the write, so the MTA never gets
reloaded onto a config that did not pass its own check.
"""

from __future__ import annotations

import threading

import structlog

from relayctl.core.exceptions import NotFoundError, ValidationError
from relayctl.postfix.store import ConfigStore
from relayctl.postfix.types import ConfigVersion, VersionStatus
from relayctl.postfix.versions import ConfigHistory

logger = structlog.stdlib.get_logger()


class ConfigApplier:
    """Staging area plus the validate-then-reload apply flow."""

    def __init__(self, store: ConfigStore, history: ConfigHistory | None = None) -> None:
        self._store = store
        self._history = history or ConfigHistory()
        self._staged: dict[str, str] = {}
        self._staged_by = ""
        self._lock = threading.Lock()

    @property
    def history(self) -> ConfigHistory:
        return self._history

    # ── Staging ─────────────────────────────────────────────────

    def stage(self, updates: dict[str, str], author: str = "") -> dict[str, str]:
        """Add *updates* to the pending change set; returns the whole set."""
        with self._lock:
            self._staged.update(updates)
            if author:
                self._staged_by = author
            logger.info("config_staged", keys=sorted(updates), author=author)
            return dict(self._staged)

    def staged(self) -> dict[str, str]:
        with self._lock:
            return dict(self._staged)

    def discard(self) -> None:
        with self._lock:
            self._staged.clear()
            self._staged_by = ""

    def diff(self) -> dict[str, tuple[str, str]]:
        """Staged keys whose value differs from disk: ``key -> (current, staged)``."""
        current = self._store.read_params()
        changes: dict[str, tuple[str, str]] = {}
        for key, value in self.staged().items():
            old = current.get(key, "")
            if old != value:
                changes[key] = (old, value)
        return changes

    # ── Apply / rollback ────────────────────────────────────────

    def apply(
        self,
        updates: dict[str, str] | None = None,
        author: str = "",
        notes: str = "",
    ) -> ConfigVersion:
        """Write staged plus *updates*, validate, reload and record a version.

        Raises:
            ValidationError: the checks failed; the previous params are restored.
            ExternalToolError: the reload failed after a successful check.
        """
        with self._lock:
            changes = {**self._staged, **(updates or {})}
            author = author or self._staged_by

        with self._store.lock.write():
            previous = self._store.read_params()
            self._store.update(changes)
            self._validate_or_restore(previous)
            content = self._store.read_params()

        self._store.reload()

        version = self._history.record(content, author=author, notes=notes)
        version = self._history.mark_applied(version.version_number)
        self.discard()
        logger.info(
            "config_applied",
            version=version.version_number,
            author=author,
            keys=sorted(changes),
        )
        return version

    def rollback(self, version_number: int, author: str = "") -> ConfigVersion:
        """Restore the params of an earlier version and make it current."""
        try:
            target = self._history.get(version_number)
        except NotFoundError:
            logger.warning("rollback_version_missing", version=version_number)
            raise

        with self._store.lock.write():
            previous = self._store.read_params()
            self._store.replace_params(target.content)
            self._validate_or_restore(previous)

        self._store.reload()

        version = self._history.mark_applied(
            version_number, demote_to=VersionStatus.ROLLED_BACK,
        )
        logger.info("config_rolled_back", version=version_number, author=author)
        return version

    def _validate_or_restore(self, previous: dict[str, str]) -> None:
        try:
            self._store.validate()
        except ValidationError as exc:
            self._store.replace_params(previous)
            logger.warning("config_restored_after_failed_check", errors=exc.messages)
            raise
