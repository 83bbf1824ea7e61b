"""AtomicWriter — backup + temp file + rename mutation of managed files."""

from __future__ import annotations

import os
import shutil
import tempfile
import time
from pathlib import Path

import structlog

from relayctl.core.exceptions import ConfigIOError

logger = structlog.stdlib.get_logger()

BACKUP_MARKER = ".bak."


class AtomicWriter:
    """Replaces files so that readers never observe a partial write.

    Steps for every :meth:`write`:

    1. copy an existing target to ``<path>.bak.<unix-ts>``;
    2. create a temp file in the target's directory (same filesystem);
    3. ``fchmod`` it to *mode* before any content is written;
    4. write, flush and fsync;
    5. ``os.replace`` the temp file over the target.

    Any failure before step 5 removes the temp file and leaves the target
    untouched. The writer assumes a single writer per path at a time;
    callers serialize through :class:`~relayctl.postfix.locking.DirectoryLock`.
    """

    def __init__(self, max_backups: int = 20, backup: bool = True) -> None:
        self._max_backups = max_backups
        self._backup = backup

    def write(
        self,
        path: str | Path,
        content: str | bytes,
        mode: int = 0o640,
        backup: bool | None = None,
    ) -> Path | None:
        """Atomically replace *path* with *content*.

        Returns:
            The backup path, or None if no previous file existed.

        Raises:
            ConfigIOError: on any filesystem failure; the target is unchanged.
        """
        target = Path(path)
        data = content.encode("utf-8") if isinstance(content, str) else content
        do_backup = self._backup if backup is None else backup

        backup_path: Path | None = None
        if do_backup and target.exists():
            try:
                backup_path = self._make_backup(target)
            except OSError as exc:
                raise ConfigIOError(f"failed to back up {target}: {exc}") from exc

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.",
                suffix=".tmp",
                dir=target.parent,
            )
        except OSError as exc:
            raise ConfigIOError(f"failed to create temp file for {target}: {exc}") from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                os.fchmod(fh.fileno(), mode)
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, target)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise ConfigIOError(f"failed to write {target}: {exc}") from exc
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.debug(
            "atomic_write_complete",
            path=str(target),
            bytes=len(data),
            backup=str(backup_path) if backup_path else None,
        )

        if backup_path is not None:
            self._prune_backups(target)
        return backup_path

    def backups(self, path: str | Path) -> list[Path]:
        """Existing backups of *path*, newest first."""
        target = Path(path)
        prefix = target.name + BACKUP_MARKER
        found = [
            p for p in target.parent.glob(f"{target.name}{BACKUP_MARKER}*")
            if p.name.startswith(prefix)
        ]
        return sorted(found, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    # ── Internal ────────────────────────────────────────────────

    def _make_backup(self, target: Path) -> Path:
        stamp = int(time.time())
        candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}")
        n = 1
        while candidate.exists():
            candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}-{n}")
            n += 1
        shutil.copy2(target, candidate)
        return candidate

    def _prune_backups(self, target: Path) -> None:
        if self._max_backups <= 0:
            return
        for stale in self.backups(target)[self._max_backups:]:
            try:
                stale.unlink()
            except OSError:
                logger.warning("backup_prune_failed", path=str(stale))
