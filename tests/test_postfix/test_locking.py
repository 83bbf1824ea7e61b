"""Tests for DirectoryLock — sharing, reentrancy, writer exclusion."""

from __future__ import annotations

import threading
import time
from pathlib import Path

from relayctl.postfix.locking import LOCK_FILENAME, DirectoryLock


class TestRegistry:
    def test_same_directory_shares_lock(self, tmp_path: Path) -> None:
        assert DirectoryLock.for_directory(tmp_path) is DirectoryLock.for_directory(str(tmp_path))

    def test_different_directories_get_different_locks(self, tmp_path: Path) -> None:
        a = DirectoryLock.for_directory(tmp_path / "a")
        b = DirectoryLock.for_directory(tmp_path / "b")
        assert a is not b


class TestWriter:
    def test_writer_creates_lock_file(self, tmp_path: Path) -> None:
        lock = DirectoryLock(tmp_path)
        with lock.write():
            assert (tmp_path / LOCK_FILENAME).exists()

    def test_writer_is_reentrant(self, tmp_path: Path) -> None:
        lock = DirectoryLock(tmp_path)
        with lock.write(), lock.write(), lock.read():
            pass
        # fully released: another thread can now write
        done = threading.Event()

        def _other() -> None:
            with lock.write():
                done.set()

        t = threading.Thread(target=_other)
        t.start()
        t.join(timeout=5)
        assert done.is_set()

    def test_writers_are_serialized(self, tmp_path: Path) -> None:
        lock = DirectoryLock(tmp_path)
        inside = 0
        max_inside = 0
        guard = threading.Lock()

        def _work() -> None:
            nonlocal inside, max_inside
            with lock.write():
                with guard:
                    inside += 1
                    max_inside = max(max_inside, inside)
                time.sleep(0.01)
                with guard:
                    inside -= 1

        threads = [threading.Thread(target=_work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert max_inside == 1

    def test_writer_waits_for_readers(self, tmp_path: Path) -> None:
        lock = DirectoryLock(tmp_path)
        order: list[str] = []
        reader_in = threading.Event()
        release_reader = threading.Event()

        def _reader() -> None:
            with lock.read():
                reader_in.set()
                release_reader.wait(timeout=5)
                order.append("reader_done")

        def _writer() -> None:
            with lock.write():
                order.append("writer")

        r = threading.Thread(target=_reader)
        r.start()
        reader_in.wait(timeout=5)
        w = threading.Thread(target=_writer)
        w.start()
        time.sleep(0.05)
        assert order == []
        release_reader.set()
        r.join(timeout=5)
        w.join(timeout=5)
        assert order == ["reader_done", "writer"]


class TestReaders:
    def test_readers_share(self, tmp_path: Path) -> None:
        lock = DirectoryLock(tmp_path)
        both_in = threading.Barrier(2, timeout=5)
        ok: list[bool] = []

        def _reader() -> None:
            with lock.read():
                both_in.wait()
                ok.append(True)

        threads = [threading.Thread(target=_reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert ok == [True, True]
