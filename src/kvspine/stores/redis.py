"""Redis backend: a thin adapter over redis-py.

Requires the ``redis`` package (``pip install kvspine[redis]``). Redis
expires keys itself, so this store starts no sweeper and ``gc()`` is a
no-op.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from kvspine.errors import ConfigError, KVError, StorageError
from kvspine.item import to_timedelta
from kvspine.logging import get_logger
from kvspine.settings import StoreOptions
from kvspine.stores.base import TTL, BaseStore
from kvspine.validation import check_key, check_key_and_value, check_ttl

logger = get_logger(__name__)

KeyFunc = Callable[[str], str]


class RedisStore(BaseStore):
    """Redis-backed store.

    Keys are namespaced by ``key_fn`` (default: ``options.key_prefix + key``).

    Example:
        store = RedisStore(redis_url="redis://localhost:6379/0", key_prefix="app:")
        store.set_ex("product:123", {"name": "Widget"}, ttl=600)

    Raises:
        ImportError: If ``redis`` package is not installed.
        StorageError: If the server does not answer PING.
    """

    name = "redis"

    def __init__(
        self,
        options: StoreOptions | None = None,
        *,
        key_fn: KeyFunc | None = None,
        **overrides: Any,
    ) -> None:
        super().__init__(options, **overrides)

        try:
            import redis
        except ImportError as exc:
            msg = (
                "Redis backend requires 'redis' package. "
                "Install with: pip install kvspine[redis]"
            )
            raise ImportError(msg) from exc

        self._redis_error = redis.RedisError
        prefix = self.options.key_prefix or ""
        self._key_fn: KeyFunc = key_fn or (lambda k: prefix + k)
        try:
            self._client = redis.from_url(self.options.redis_url, decode_responses=False)
        except ValueError as e:
            raise ConfigError(
                f"Invalid Redis URL {self.options.redis_url!r}", cause=e
            ).with_context(store=self.name)

        try:
            self._client.ping()
        except self._redis_error as e:
            self._client.close()
            raise StorageError(
                f"Cannot connect to Redis at {self.options.redis_url}", cause=e
            ).with_context(store=self.name)

        logger.info("store_opened", store=self.name, url=self.options.redis_url, codec=self._codec.name)

    def set_ex(self, key: str, value: Any, ttl: TTL) -> None:
        check_key_and_value(key, value)
        check_ttl(ttl)

        data = self._codec.marshal(value)
        ms = int(to_timedelta(ttl).total_seconds() * 1000)

        try:
            if ttl:
                self._client.set(self._key_fn(key), data, px=max(1, ms))
            else:
                self._client.set(self._key_fn(key), data)
        except self._redis_error as e:
            raise StorageError("Redis SET failed", cause=e).with_context(
                store=self.name, key=key, operation="set_ex"
            )

    def get(self, key: str, target: Any = Any) -> tuple[bool, Any]:
        check_key_and_value(key, target)

        try:
            raw = self._client.get(self._key_fn(key))
        except self._redis_error as e:
            raise StorageError("Redis GET failed", cause=e).with_context(
                store=self.name, key=key, operation="get"
            )

        if raw is None:
            return False, None
        return True, self._codec.unmarshal(raw, target)

    def has(self, key: str) -> bool:
        try:
            check_key(key)
            return bool(self._client.exists(self._key_fn(key)))
        except (KVError, self._redis_error):
            return False

    def delete(self, key: str) -> None:
        check_key(key)

        try:
            self._client.delete(self._key_fn(key))
        except self._redis_error as e:
            raise StorageError("Redis DEL failed", cause=e).with_context(
                store=self.name, key=key, operation="delete"
            )

    def gc(self) -> int:
        return 0

    def _release(self) -> None:
        self._client.close()


__all__ = ["RedisStore", "KeyFunc"]
