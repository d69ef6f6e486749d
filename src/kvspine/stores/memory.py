"""In-process map backend: a dict guarded by one reader/writer lock."""

from __future__ import annotations

from typing import Any

from kvspine.errors import ValidationError
from kvspine.item import Item, new_item, utc_now
from kvspine.locks import RWLock
from kvspine.logging import get_logger
from kvspine.settings import StoreOptions
from kvspine.stores.base import TTL, BaseStore
from kvspine.validation import check_key, check_key_and_value, check_ttl

logger = get_logger(__name__)


class MapStore(BaseStore):
    """
    Key-value store over a plain dict.

    Writers (``set_ex``, ``delete``, ``gc``) hold the lock exclusively;
    readers share it and release it before decoding, so a slow unmarshal
    never blocks a writer. ``gc`` holds the write lock for the whole sweep,
    which is fine for the small key sets this backend is meant for.

    Example:
        store = MapStore(codec="json", gc_interval=60)
        store.set_ex("session:abc", {"user_id": 42}, ttl=3600)
        found, session = store.get("session:abc", dict)
    """

    name = "map"

    def __init__(self, options: StoreOptions | None = None, **overrides: Any) -> None:
        super().__init__(options, **overrides)
        self._data: dict[str, Item] = {}
        self._lock = RWLock()
        self._start_sweeper()
        logger.info("store_opened", store=self.name, codec=self._codec.name)

    def set_ex(self, key: str, value: Any, ttl: TTL) -> None:
        check_key_and_value(key, value)
        check_ttl(ttl)

        item = new_item(self._codec.marshal(value), ttl)

        with self._lock.write():
            self._data[key] = item

    def get(self, key: str, target: Any = Any) -> tuple[bool, Any]:
        check_key_and_value(key, target)

        # Released before unmarshalling so writers are not held up by it
        with self._lock.read():
            item = self._data.get(key)

        if item is None:
            return False, None

        if item.is_expired():
            self._evict(key, item)
            return False, None

        return True, self._codec.unmarshal(item.data, target)

    def has(self, key: str) -> bool:
        try:
            check_key(key)
        except ValidationError:
            return False

        with self._lock.read():
            item = self._data.get(key)

        return item is not None and not item.is_expired()

    def delete(self, key: str) -> None:
        check_key(key)

        with self._lock.write():
            self._data.pop(key, None)

    def gc(self) -> int:
        logger.debug("gc_started", store=self.name)

        with self._lock.write():
            now = utc_now()
            expired = [k for k, item in self._data.items() if item.is_expired(now)]
            for k in expired:
                del self._data[k]
            remaining = len(self._data)

        logger.info("gc_completed", store=self.name, removed=len(expired), remaining=remaining)
        return len(expired)

    def _evict(self, key: str, item: Item) -> None:
        # Only drop the exact item we saw; a concurrent set may have replaced it
        with self._lock.write():
            if self._data.get(key) is item:
                del self._data[key]

    def _release(self) -> None:
        with self._lock.write():
            self._data.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._data)


__all__ = ["MapStore"]
