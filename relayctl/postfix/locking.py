"""DirectoryLock — reader/writer lock scoped to one config directory."""

from __future__ import annotations

import fcntl
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

LOCK_FILENAME = ".relayctl.lock"

_registry: dict[Path, DirectoryLock] = {}
_registry_lock = threading.Lock()


class DirectoryLock:
    """Serializes mutations of one config directory.

    Readers share the lock; a writer is exclusive. The writer side is
    reentrant for the owning thread so that a map save can update the
    config pointer while still holding the lock, and the owning thread may
    also take the read side. The first writer acquisition additionally takes
    an ``fcntl.flock`` on ``<dir>/.relayctl.lock`` so separate processes
    managing the same directory serialize too.

    Use :meth:`for_directory` so every store of a directory shares one lock.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._depth = 0
        self._fd: int | None = None

    @classmethod
    def for_directory(cls, directory: str | Path) -> DirectoryLock:
        key = Path(directory).resolve()
        with _registry_lock:
            lock = _registry.get(key)
            if lock is None:
                lock = cls(key)
                _registry[key] = lock
            return lock

    @property
    def directory(self) -> Path:
        return self._directory

    @contextmanager
    def read(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                reentrant = True
            else:
                reentrant = False
                while self._writer is not None:
                    self._cond.wait()
                self._readers += 1
        try:
            yield
        finally:
            if not reentrant:
                with self._cond:
                    self._readers -= 1
                    if self._readers == 0:
                        self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        self._acquire_write()
        try:
            yield
        finally:
            self._release_write()

    def _acquire_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._depth += 1
                return
            while self._writer is not None or self._readers > 0:
                self._cond.wait()
            self._writer = me
            self._depth = 1
        try:
            self._lock_file()
        except BaseException:
            with self._cond:
                self._writer = None
                self._depth = 0
                self._cond.notify_all()
            raise

    def _release_write(self) -> None:
        with self._cond:
            self._depth -= 1
            if self._depth > 0:
                return
            self._unlock_file()
            self._writer = None
            self._cond.notify_all()

    def _lock_file(self) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._directory / LOCK_FILENAME, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except BaseException:
            os.close(fd)
            raise
        self._fd = fd

    def _unlock_file(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
