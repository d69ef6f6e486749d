"""Store backends."""

from kvspine.stores.base import BaseStore, Store
from kvspine.stores.file import FileStore
from kvspine.stores.memory import MapStore
from kvspine.stores.redis import RedisStore
from kvspine.stores.sql import SQLStore
from kvspine.stores.syncmap import ConcurrentMap, SyncMapStore

__all__ = [
    "Store",
    "BaseStore",
    "MapStore",
    "SyncMapStore",
    "ConcurrentMap",
    "FileStore",
    "RedisStore",
    "SQLStore",
]
