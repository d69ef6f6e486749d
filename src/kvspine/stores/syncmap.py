"""Concurrency-safe map backend.

Reads go straight to the underlying dict with no lock held by the caller.
Writes and deletes take one of a fixed set of striped locks chosen by the
key's hash, which makes compare-and-delete (``delete_if``) atomic against a
concurrent ``store`` of the same key without serializing unrelated keys.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from typing import Any

from kvspine.errors import ValidationError
from kvspine.item import Item, new_item, utc_now
from kvspine.logging import get_logger
from kvspine.settings import StoreOptions
from kvspine.stores.base import TTL, BaseStore
from kvspine.validation import check_key, check_key_and_value, check_ttl

logger = get_logger(__name__)

DEFAULT_STRIPES = 16


class ConcurrentMap:
    """Dict with lock-free reads and hash-striped writes."""

    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        self._data: dict[str, Any] = {}
        self._locks = [threading.Lock() for _ in range(max(1, stripes))]

    def _stripe(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def load(self, key: str) -> Any | None:
        return self._data.get(key)

    def store(self, key: str, value: Any) -> None:
        with self._stripe(key):
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._stripe(key):
            self._data.pop(key, None)

    def delete_if(self, key: str, expected: Any) -> bool:
        """Delete key only while it still maps to ``expected`` (identity)."""
        with self._stripe(key):
            if self._data.get(key) is expected:
                del self._data[key]
                return True
            return False

    def range(self, fn: Callable[[str, Any], bool]) -> None:
        """Call fn(key, value) over a snapshot until it returns False.

        Entries stored or deleted while ranging may or may not be seen.
        """
        for key, value in self._data.copy().items():
            if not fn(key, value):
                break

    def clear(self) -> None:
        for lock in self._locks:
            lock.acquire()
        try:
            self._data.clear()
        finally:
            for lock in reversed(self._locks):
                lock.release()

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data.copy())


class SyncMapStore(BaseStore):
    """Key-value store over a :class:`ConcurrentMap`.

    Same contract as :class:`~kvspine.stores.memory.MapStore`, but callers
    never hold a store-wide lock: readers never wait, and ``gc`` sweeps
    without blocking concurrent ``get``/``set_ex`` calls.
    """

    name = "syncmap"

    def __init__(
        self,
        options: StoreOptions | None = None,
        *,
        stripes: int = DEFAULT_STRIPES,
        **overrides: Any,
    ) -> None:
        super().__init__(options, **overrides)
        self._map = ConcurrentMap(stripes)
        self._start_sweeper()
        logger.info("store_opened", store=self.name, codec=self._codec.name, stripes=stripes)

    def set_ex(self, key: str, value: Any, ttl: TTL) -> None:
        check_key_and_value(key, value)
        check_ttl(ttl)

        self._map.store(key, new_item(self._codec.marshal(value), ttl))

    def get(self, key: str, target: Any = Any) -> tuple[bool, Any]:
        check_key_and_value(key, target)

        item: Item | None = self._map.load(key)
        if item is None:
            return False, None

        if item.is_expired():
            self._map.delete_if(key, item)
            return False, None

        return True, self._codec.unmarshal(item.data, target)

    def has(self, key: str) -> bool:
        try:
            check_key(key)
        except ValidationError:
            return False

        item: Item | None = self._map.load(key)
        return item is not None and not item.is_expired()

    def delete(self, key: str) -> None:
        check_key(key)

        self._map.delete(key)

    def gc(self) -> int:
        logger.debug("gc_started", store=self.name)
        now = utc_now()
        removed = 0

        def _visit(key: str, item: Item) -> bool:
            nonlocal removed
            if item.is_expired(now) and self._map.delete_if(key, item):
                removed += 1
            return True

        self._map.range(_visit)

        logger.info("gc_completed", store=self.name, removed=removed, remaining=len(self._map))
        return removed

    def _release(self) -> None:
        self._map.clear()

    def __len__(self) -> int:
        return len(self._map)


__all__ = ["ConcurrentMap", "SyncMapStore", "DEFAULT_STRIPES"]
