"""Lookup tables — flat record files paired with a compiled index.

Every save goes through a staging name so the live file and its index are
only ever swapped in after the map compiler accepted the new content::

    transport.staging      written atomically
    transport.staging.db   produced by postmap
    transport.db           <- os.replace(transport.staging.db)
    transport              <- os.replace(transport.staging)

The config pointer (e.g. ``transport_maps = hash:/etc/postfix/transport``)
is updated last and only when it differs from what is on disk.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Generic, TypeVar

import structlog
from pydantic import SecretStr

from relayctl.core.config import MapsConfig
from relayctl.core.exceptions import (
    ConfigIOError,
    ConflictError,
    ExternalToolError,
    NotFoundError,
)
from relayctl.maps.types import CredentialEntry, MapEntry
from relayctl.postfix.store import ConfigStore

logger = structlog.stdlib.get_logger()

STAGING_SUFFIX = ".staging"
DISABLED_MARKER = "disabled:"

E = TypeVar("E", MapEntry, CredentialEntry)


class MapTable(ABC, Generic[E]):
    """Shared read-check-write logic for one lookup table."""

    label: str = ""
    pointer_param: str = ""
    file_mode: int = 0o644
    header: tuple[str, ...] = ()

    def __init__(
        self,
        store: ConfigStore,
        filename: str,
        config: MapsConfig | None = None,
    ) -> None:
        from relayctl.core.config import get_settings

        self._store = store
        self._config = config or get_settings().maps
        self._path = store.config_dir / filename

    @property
    def path(self) -> Path:
        return self._path

    @property
    def index_path(self) -> Path:
        return self._path.with_name(self._path.name + self._config.index_suffix)

    @property
    def pointer(self) -> str:
        return f"{self._config.map_type}:{self._path}"

    # ── Record format ───────────────────────────────────────────

    @abstractmethod
    def _key(self, entry: E) -> str: ...

    @abstractmethod
    def _parse_line(self, line: str) -> E | None: ...

    @abstractmethod
    def _format(self, entry: E) -> str: ...

    # ── Reads ───────────────────────────────────────────────────

    def list(self) -> list[E]:
        with self._store.lock.read():
            return self._load()

    def get(self, key: str) -> E:
        for entry in self.list():
            if self._key(entry) == key:
                return entry
        raise NotFoundError(f"{self.label} entry for {key} not found")

    def _load(self) -> list[E]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise ConfigIOError(f"failed to read {self._path}: {exc}") from exc

        entries: list[E] = []
        for raw in text.splitlines():
            line = raw.strip()
            if not line:
                continue
            entry = self._parse_line(line)
            if entry is not None:
                entries.append(entry)
        return entries

    # ── Mutations ───────────────────────────────────────────────

    def save(self, entries: Sequence[E]) -> None:
        """Rewrite the whole table, recompile its index, point the config at it."""
        with self._store.lock.write():
            self._save(list(entries))

    def add(self, entry: E) -> None:
        key = self._key(entry)
        with self._store.lock.write():
            entries = self._load()
            if any(self._key(e) == key for e in entries):
                raise ConflictError(f"{self.label} entry for {key} already exists")
            entries.append(entry)
            self._save(entries)
        logger.info("map_entry_added", table=self.label, key=key)

    def update(self, key: str, entry: E) -> None:
        new_key = self._key(entry)
        with self._store.lock.write():
            entries = self._load()
            idx = next((i for i, e in enumerate(entries) if self._key(e) == key), None)
            if idx is None:
                raise NotFoundError(f"{self.label} entry for {key} not found")
            if new_key != key and any(self._key(e) == new_key for e in entries):
                raise ConflictError(f"{self.label} entry for {new_key} already exists")
            entries[idx] = entry
            self._save(entries)
        logger.info("map_entry_updated", table=self.label, key=key)

    def delete(self, key: str) -> None:
        with self._store.lock.write():
            entries = self._load()
            remaining = [e for e in entries if self._key(e) != key]
            if len(remaining) == len(entries):
                raise NotFoundError(f"{self.label} entry for {key} not found")
            self._save(remaining)
        logger.info("map_entry_deleted", table=self.label, key=key)

    def recover(self) -> list[Path]:
        """Remove staging leftovers of an interrupted save."""
        removed: list[Path] = []
        with self._store.lock.write():
            staging = self._staging_path()
            for leftover in (staging, self._index_of(staging)):
                if leftover.exists():
                    leftover.unlink()
                    removed.append(leftover)
        if removed:
            logger.warning(
                "map_staging_recovered",
                table=self.label,
                removed=[str(p) for p in removed],
            )
        return removed

    # ── Internal ────────────────────────────────────────────────

    def _staging_path(self) -> Path:
        return self._path.with_name(self._path.name + STAGING_SUFFIX)

    def _index_of(self, source: Path) -> Path:
        return source.with_name(source.name + self._config.index_suffix)

    def _render(self, entries: list[E]) -> str:
        lines = [*self.header, ""]
        lines.extend(self._format(e) for e in entries)
        return "\n".join(lines) + "\n"

    def _save(self, entries: list[E]) -> None:
        staging = self._staging_path()
        staged_index = self._index_of(staging)

        self._store.writer.write(
            staging, self._render(entries), mode=self.file_mode, backup=False,
        )
        try:
            self._store.tools.compile_map(self._config.map_type, staging)
        except ExternalToolError:
            staging.unlink(missing_ok=True)
            staged_index.unlink(missing_ok=True)
            logger.warning("map_compile_failed", table=self.label, path=str(self._path))
            raise

        try:
            if staged_index.exists():
                os.chmod(staged_index, self.file_mode)
                os.replace(staged_index, self.index_path)
            os.replace(staging, self._path)
        except OSError as exc:
            raise ConfigIOError(f"failed to swap in {self._path}: {exc}") from exc

        if self._store.read_params().get(self.pointer_param) != self.pointer:
            self._store.update({self.pointer_param: self.pointer})

        logger.info(
            "map_saved",
            table=self.label,
            path=str(self._path),
            entries=len(entries),
        )


class _KeyValueTable(MapTable[MapEntry]):
    """``key<TAB>value(s)`` records; ``# disabled: key value`` marks a disabled one."""

    def _key(self, entry: MapEntry) -> str:
        return entry.key

    def _parse_line(self, line: str) -> MapEntry | None:
        enabled = True
        if line.startswith("#"):
            # Any other comment belongs to the header.
            body = line[1:].strip()
            if not body.startswith(DISABLED_MARKER):
                return None
            line = body[len(DISABLED_MARKER):]
            enabled = False
        fields = line.split(None, 1)
        if len(fields) < 2:
            return None
        return MapEntry(key=fields[0], value=fields[1], enabled=enabled)

    def _format(self, entry: MapEntry) -> str:
        prefix = "" if entry.enabled else f"# {DISABLED_MARKER} "
        return f"{prefix}{entry.key}\t{entry.value}"


class TransportMap(_KeyValueTable):
    """Per-domain routing to a next-hop relay."""

    label = "transport"
    pointer_param = "transport_maps"
    header = (
        "# Transport maps - managed by relayctl",
        "# Format: domain transport:nexthop",
    )

    def __init__(self, store: ConfigStore, config: MapsConfig | None = None) -> None:
        from relayctl.core.config import get_settings

        config = config or get_settings().maps
        super().__init__(store, config.transport_file, config)


class SenderRelayMap(_KeyValueTable):
    """Per-sender (address or ``@domain``) relay host selection."""

    label = "sender_relay"
    pointer_param = "sender_dependent_relayhost_maps"
    header = (
        "# Sender-dependent relay maps - managed by relayctl",
        "# Format: sender@domain [relay]:port",
    )

    def __init__(self, store: ConfigStore, config: MapsConfig | None = None) -> None:
        from relayctl.core.config import get_settings

        config = config or get_settings().maps
        super().__init__(store, config.sender_relay_file, config)


class CredentialMap(MapTable[CredentialEntry]):
    """Relay logins; the file is created 0600 and never world-readable."""

    label = "credentials"
    pointer_param = "smtp_sasl_password_maps"
    file_mode = 0o600
    header = (
        "# SASL password file - managed by relayctl",
        "# Format: [hostname]:port username:password",
    )

    def __init__(self, store: ConfigStore, config: MapsConfig | None = None) -> None:
        from relayctl.core.config import get_settings

        config = config or get_settings().maps
        super().__init__(store, config.credentials_file, config)

    def set(self, host: str, username: str, secret: str) -> None:
        """Add or replace the login for *host*."""
        entry = CredentialEntry(host=host, username=username, secret=SecretStr(secret))
        with self._store.lock.write():
            entries = [e for e in self._load() if e.host != host]
            entries.append(entry)
            self._save(entries)
        logger.info("credentials_saved", host=host, username=username)

    def _key(self, entry: CredentialEntry) -> str:
        return entry.host

    def _parse_line(self, line: str) -> CredentialEntry | None:
        if line.startswith("#"):
            return None
        host, _, rest = line.partition(" ")
        if not rest:
            host, _, rest = line.partition("\t")
        username, sep, secret = rest.strip().partition(":")
        if not sep or not username or not secret:
            return None
        return CredentialEntry(host=host, username=username, secret=SecretStr(secret))

    def _format(self, entry: CredentialEntry) -> str:
        return entry.record()
