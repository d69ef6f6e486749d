"""
Reader/writer locks and a per-key lock registry.

┌──────────────────────────────────────────────────────────────────────────┐
│  KEY LOCK REGISTRY                                                       │
│                                                                          │
│   with registry.write("a"):        with registry.read("b"):              │
│        │                                │                                │
│        ▼                                ▼                                │
│   ┌──────────────── registry mutex ─────────────────┐                    │
│   │  entries: {"a": [RWLock, refs=1],               │                    │
│   │            "b": [RWLock, refs=1]}               │                    │
│   └─────────────────────────────────────────────────┘                    │
│        │ lock "a" exclusively           │ lock "b" shared                │
│        ▼                                ▼                                │
│     file I/O on a                    file I/O on b   (never block)       │
│                                                                          │
│  An entry lives while at least one caller holds or waits on it, so at    │
│  most one RWLock exists per key and the registry only grows with the     │
│  number of keys that have operations in flight.                          │
└──────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class RWLock:
    """Writer-preferring reader/writer lock.

    Any number of readers may hold the lock together; a writer holds it
    alone. Once a writer is waiting, new readers queue behind it so a steady
    stream of readers cannot starve writers.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() called without a matching acquire_write()")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = RWLock()
        self.refs = 0


class KeyLockRegistry:
    """Reference-counted map from key to RWLock.

    Example:
        >>> registry = KeyLockRegistry()
        >>> with registry.write("user%3A1"):
        ...     pass
        >>> len(registry)
        0
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def acquire(self, key: str) -> RWLock:
        """Return the key's lock, registering it if needed. Pair with release()."""
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.refs += 1
            return entry.lock

    def release(self, key: str) -> None:
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                raise RuntimeError(f"release() for unregistered key {key!r}")
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[key]

    @contextmanager
    def read(self, key: str) -> Iterator[None]:
        lock = self.acquire(key)
        try:
            with lock.read():
                yield
        finally:
            self.release(key)

    @contextmanager
    def write(self, key: str) -> Iterator[None]:
        lock = self.acquire(key)
        try:
            with lock.write():
                yield
        finally:
            self.release(key)

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._mutex:
            return key in self._entries


__all__ = ["RWLock", "KeyLockRegistry"]
