"""Tests for folio.locks.RWLock."""

from __future__ import annotations

import threading
import time

from folio.locks import RWLock


def test_readers_share_the_lock() -> None:
    lock = RWLock()
    inside = threading.Barrier(2, timeout=2)

    def reader() -> None:
        with lock.read():
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(2)
    assert not any(t.is_alive() for t in threads)


def test_writer_excludes_readers() -> None:
    lock = RWLock()
    events: list[str] = []
    lock.acquire_write()

    def reader() -> None:
        with lock.read():
            events.append("read")

    t = threading.Thread(target=reader)
    t.start()
    time.sleep(0.1)
    events.append("write-done")
    lock.release_write()
    t.join(2)

    assert events == ["write-done", "read"]


def test_waiting_writer_blocks_new_readers() -> None:
    lock = RWLock()
    order: list[str] = []
    lock.acquire_read()

    def writer() -> None:
        with lock.write():
            order.append("write")

    def late_reader() -> None:
        with lock.read():
            order.append("read")

    w = threading.Thread(target=writer)
    w.start()
    time.sleep(0.1)
    r = threading.Thread(target=late_reader)
    r.start()
    time.sleep(0.1)
    lock.release_read()
    w.join(2)
    r.join(2)

    assert order == ["write", "read"]
