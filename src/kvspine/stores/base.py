"""
Store contract and the shared base class for all backends.

Manifesto:
    Callers should be able to swap a file store for a Redis store without
    touching the code that reads and writes keys. Every backend therefore
    exposes the same seven operations with the same semantics:

    - **Validation first:** bad keys/values fail before any storage access
    - **Not-found is a value:** ``get`` returns ``(False, None)``
    - **Lazy expiry:** expired items read as absent even before a sweep
    - **Owned sweeper:** the store starts its sweeper and ``close()`` stops it

Architecture:
    ::

        Store (Protocol)
        └── BaseStore (ABC)  options merge, codec, sweeper, set(), close()
            ├── MapStore      dict + one RWLock
            ├── SyncMapStore  ConcurrentMap (striped writes)
            ├── FileStore     one file per key + KeyLockRegistry
            ├── RedisStore    redis-py client (no sweeper)
            └── SQLStore      SQLAlchemy table

        API: set(key, value)
             set_ex(key, value, ttl)
             get(key, target=Any) → (found, value)
             has(key) → bool
             delete(key)
             gc() → removed count
             close()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError as PydanticValidationError

from kvspine.codec import Codec, get_codec
from kvspine.errors import ConfigError
from kvspine.logging import get_logger
from kvspine.settings import StoreOptions, merge_options
from kvspine.sweeper import Sweeper, resolve_interval

logger = get_logger(__name__)

TTL = float | int | timedelta


@runtime_checkable
class Store(Protocol):
    """Protocol every key-value backend implements."""

    name: str

    def set(self, key: str, value: Any) -> None:
        """Store value under key with no expiry."""
        ...

    def set_ex(self, key: str, value: Any, ttl: TTL) -> None:
        """Store value under key, expiring ``ttl`` from now (0 never expires).

        Overwrites any existing entry.
        """
        ...

    def get(self, key: str, target: Any = Any) -> tuple[bool, Any]:
        """Return ``(True, value)`` for a live entry, else ``(False, None)``.

        ``value`` is decoded into ``target``; a payload that cannot be
        decoded raises :class:`~kvspine.errors.DecodeError`.
        """
        ...

    def has(self, key: str) -> bool:
        """True iff ``get(key)`` would report the key as found. Never raises."""
        ...

    def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is not an error."""
        ...

    def gc(self) -> int:
        """Remove every currently expired entry; return how many were removed."""
        ...

    def close(self) -> None:
        """Stop the sweeper and release in-process resources."""
        ...


def build_options(options: StoreOptions | None, overrides: dict[str, Any]) -> StoreOptions:
    """Merge constructor keyword overrides over ``options`` and the defaults."""
    if overrides:
        base = {}
        if options is not None:
            base = {
                name: getattr(options, name)
                for name in StoreOptions.model_fields
                if getattr(options, name) is not None
            }
        try:
            options = StoreOptions(**{**base, **overrides})
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid store options: {e}", cause=e) from e
    return merge_options(options)


class BaseStore(ABC):
    """Shared lifecycle for the backends.

    Subclasses set up their storage in ``__init__`` and then call
    ``self._start_sweeper()``; they implement the abstract operations and
    ``_release()``.
    """

    name = "base"

    def __init__(self, options: StoreOptions | None = None, **overrides: Any) -> None:
        self.options = build_options(options, overrides)
        self._codec: Codec = get_codec(self.options.codec)
        self._sweeper: Sweeper | None = None
        self._closed = False

    def _start_sweeper(self) -> None:
        interval = resolve_interval(self.options.gc_interval)
        if interval is None:
            logger.debug("sweeper_disabled", store=self.name)
            return
        self._sweeper = Sweeper(self.gc, interval, name=self.name)
        self._sweeper.start()

    @property
    def codec(self) -> Codec:
        return self._codec

    @property
    def sweeper(self) -> Sweeper | None:
        return self._sweeper

    @property
    def closed(self) -> bool:
        return self._closed

    def set(self, key: str, value: Any) -> None:
        self.set_ex(key, value, 0)

    @abstractmethod
    def set_ex(self, key: str, value: Any, ttl: TTL) -> None: ...

    @abstractmethod
    def get(self, key: str, target: Any = Any) -> tuple[bool, Any]: ...

    @abstractmethod
    def has(self, key: str) -> bool: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def gc(self) -> int: ...

    @abstractmethod
    def _release(self) -> None:
        """Release backend resources. Called once by close()."""

    def close(self) -> None:
        if self._closed:
            return
        if self._sweeper is not None:
            self._sweeper.stop()
        self._release()
        self._closed = True
        logger.info("store_closed", store=self.name)

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(codec={self._codec.name!r})"


__all__ = ["Store", "BaseStore", "TTL", "build_options"]
