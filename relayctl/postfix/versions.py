"""ConfigHistory — record of applied configuration snapshots, optionally kept in a JSON file."""

from __future__ import annotations

import datetime
import threading
from pathlib import Path

import pydantic
from pydantic import TypeAdapter

from relayctl.core.exceptions import ConfigIOError, NotFoundError
from relayctl.postfix.atomic import AtomicWriter
from relayctl.postfix.types import ConfigVersion, VersionStatus

_VERSION_LIST = TypeAdapter(list[ConfigVersion])


class ConfigHistory:
    """Monotonically numbered config versions; at most one is ``applied``.

    Durable storage is the caller's concern: :meth:`load` seeds the history
    from previously persisted versions and :meth:`list` returns everything
    for saving back.
    """

    def __init__(self) -> None:
        self._versions: dict[int, ConfigVersion] = {}
        self._next = 1
        self._lock = threading.Lock()

    def load(self, versions: list[ConfigVersion]) -> None:
        with self._lock:
            self._versions = {v.version_number: v.model_copy() for v in versions}
            self._next = max(self._versions, default=0) + 1

    def record(
        self,
        content: dict[str, str],
        author: str = "",
        notes: str = "",
    ) -> ConfigVersion:
        """Store a new draft snapshot and return it."""
        with self._lock:
            version = ConfigVersion(
                version_number=self._next,
                content=dict(content),
                author=author,
                notes=notes,
            )
            self._versions[version.version_number] = version
            self._next += 1
            return version.model_copy()

    def mark_applied(
        self,
        version_number: int,
        demote_to: VersionStatus = VersionStatus.SUPERSEDED,
    ) -> ConfigVersion:
        """Make *version_number* the applied version.

        The previously applied version (if any, and if different) becomes
        *demote_to*.
        """
        with self._lock:
            target = self._versions.get(version_number)
            if target is None:
                raise NotFoundError(f"config version {version_number} not found")
            for v in self._versions.values():
                if v.status == VersionStatus.APPLIED and v.version_number != version_number:
                    v.status = demote_to
            target.status = VersionStatus.APPLIED
            target.applied_at = datetime.datetime.now(datetime.UTC)
            return target.model_copy()

    def current(self) -> ConfigVersion | None:
        with self._lock:
            for v in self._versions.values():
                if v.status == VersionStatus.APPLIED:
                    return v.model_copy()
            return None

    def get(self, version_number: int) -> ConfigVersion:
        with self._lock:
            version = self._versions.get(version_number)
            if version is None:
                raise NotFoundError(f"config version {version_number} not found")
            return version.model_copy()

    def list(self, limit: int | None = 50) -> list[ConfigVersion]:
        """Newest first; ``limit=None`` returns every version."""
        with self._lock:
            ordered = sorted(self._versions.values(), key=lambda v: v.version_number, reverse=True)
            return [v.model_copy() for v in ordered[:limit]]


def load_history(path: Path) -> ConfigHistory:
    """Read a history file written by :func:`save_history`; missing means empty."""
    history = ConfigHistory()
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return history
    except OSError as exc:
        raise ConfigIOError(f"failed to read {path}: {exc}") from exc
    try:
        history.load(_VERSION_LIST.validate_json(data))
    except pydantic.ValidationError as exc:
        raise ConfigIOError(f"corrupt history file {path}: {exc}") from exc
    return history


def save_history(history: ConfigHistory, path: Path, writer: AtomicWriter) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigIOError(f"failed to create {path.parent}: {exc}") from exc
    writer.write(path, _VERSION_LIST.dump_json(history.list(limit=None), indent=2), backup=False)
