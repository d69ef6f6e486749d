"""Store construction by backend name."""

from __future__ import annotations

from typing import Any

from kvspine.errors import ConfigError, KVError
from kvspine.logging import get_logger
from kvspine.settings import KVSettings, StoreOptions, get_settings
from kvspine.stores import FileStore, MapStore, RedisStore, SQLStore, SyncMapStore
from kvspine.stores.base import BaseStore

logger = get_logger(__name__)

BACKENDS: dict[str, type[BaseStore]] = {
    "map": MapStore,
    "syncmap": SyncMapStore,
    "file": FileStore,
    "redis": RedisStore,
    "sql": SQLStore,
}


def create_store(kind: str, options: StoreOptions | None = None, **overrides: Any) -> BaseStore:
    """
    Build a store for ``kind``.

    Args:
        kind: One of ``map``, ``syncmap``, ``file``, ``redis``, ``sql``
        options: Per-store options; unset fields take the defaults
        **overrides: Option fields or backend keyword arguments

    Raises:
        ConfigError: Unknown backend name
        StorageError: The backend could not set up its storage
    """
    try:
        store_cls = BACKENDS[kind]
    except KeyError:
        raise ConfigError(
            f"Unknown store type {kind!r} (expected one of: {', '.join(BACKENDS)})"
        ) from None
    return store_cls(options, **overrides)


def open_store(kind: str, options: StoreOptions | None = None, **overrides: Any) -> BaseStore | None:
    """Like :func:`create_store` but returns None when setup fails.

    The failure is logged; callers must check for None before use.
    """
    try:
        return create_store(kind, options, **overrides)
    except (KVError, ImportError) as e:
        details = e.to_dict() if isinstance(e, KVError) else {"error_type": type(e).__name__}
        logger.error("store_open_failed", store=kind, error=str(e), **details)
        return None


def store_from_settings(settings: KVSettings | None = None) -> BaseStore | None:
    """Open the backend selected by ``KVSPINE_STORE_TYPE`` and friends."""
    settings = settings or get_settings()
    return open_store(settings.store_type, settings.to_options())


__all__ = ["BACKENDS", "create_store", "open_store", "store_from_settings"]
