"""
core/rwlock.py -- Reader/writer lock for in-process shared state.

Any number of readers may hold the lock at once; a writer holds it alone.
Waiting writers block new readers so a steady stream of reads cannot starve
a write.

Usage:
    lock = RWLock()
    with lock.read():
        value = table.get(key)
    with lock.write():
        table[key] = value

The lock is not reentrant: acquiring write() while holding read() on the same
lock deadlocks.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class RWLock:
    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()
