"""kvspine -- key-value stores with per-entry expiry.

One contract, several backends::

    MapStore      dict + reader/writer lock
    SyncMapStore  concurrent dict, lock-free reads
    FileStore     one file per key, per-key locks
    RedisStore    redis-py adapter
    SQLStore      SQLAlchemy table

Example:
    >>> from kvspine import MapStore
    >>> with MapStore(gc_interval=-1) as store:
    ...     store.set("a", 1)
    ...     store.get("a", int)
    (True, 1)
"""

from kvspine.codec import JSON, PICKLE, Codec, JSONCodec, PickleCodec, get_codec
from kvspine.errors import (
    CodecError,
    ConfigError,
    DecodeError,
    EncodeError,
    InvalidKeyError,
    InvalidValueError,
    KVError,
    StorageError,
    ValidationError,
)
from kvspine.factory import create_store, open_store, store_from_settings
from kvspine.item import Item, new_item
from kvspine.settings import DEFAULT_OPTIONS, KVSettings, StoreOptions, merge_options
from kvspine.stores import (
    BaseStore,
    FileStore,
    MapStore,
    RedisStore,
    SQLStore,
    Store,
    SyncMapStore,
)

__version__ = "0.1.0"

__all__ = [
    # Stores
    "Store",
    "BaseStore",
    "MapStore",
    "SyncMapStore",
    "FileStore",
    "RedisStore",
    "SQLStore",
    "create_store",
    "open_store",
    "store_from_settings",
    # Records
    "Item",
    "new_item",
    # Codecs
    "Codec",
    "JSONCodec",
    "PickleCodec",
    "JSON",
    "PICKLE",
    "get_codec",
    # Options
    "StoreOptions",
    "DEFAULT_OPTIONS",
    "merge_options",
    "KVSettings",
    # Errors
    "KVError",
    "ValidationError",
    "InvalidKeyError",
    "InvalidValueError",
    "CodecError",
    "EncodeError",
    "DecodeError",
    "StorageError",
    "ConfigError",
]
