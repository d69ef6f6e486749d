"""SQL backend: one row per key in a SQLAlchemy Core table.

Table layout::

    <table_name>
      id          VARCHAR(255)  primary key
      data        BLOB          codec-encoded value
      expires_at  DATETIME NULL naive UTC, NULL never expires
      updated_at  DATETIME      naive UTC

Writes are insert-then-update-on-conflict inside a transaction. Expired rows
read as absent and are removed by ``gc()`` with a single DELETE.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    LargeBinary,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    event,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from kvspine.errors import KVError, StorageError
from kvspine.item import Item, new_item, utc_now
from kvspine.logging import get_logger
from kvspine.settings import StoreOptions
from kvspine.stores.base import TTL, BaseStore
from kvspine.validation import check_key, check_key_and_value, check_ttl

logger = get_logger(__name__)

MAX_KEY_LENGTH = 255


def create_kv_engine(url: str, *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine; SQLite gets WAL mode and cross-thread use."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine

    return create_engine(url, echo=echo, **kwargs)


def kv_table(name: str, metadata: MetaData) -> Table:
    return Table(
        name,
        metadata,
        Column("id", String(MAX_KEY_LENGTH), primary_key=True),
        Column("data", LargeBinary, nullable=False),
        Column("expires_at", DateTime, nullable=True, index=True),
        Column("updated_at", DateTime, nullable=False),
    )


def _naive_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    return dt.astimezone(UTC).replace(tzinfo=None)


class SQLStore(BaseStore):
    """Store backed by a relational table.

    Example:
        store = SQLStore(database_url="postgresql://kv:kv@localhost/kv", table_name="sessions")
        store.set_ex("session:abc", {"user_id": 42}, ttl=1800)

    Raises:
        StorageError: If the engine cannot be created or the table cannot be created.
    """

    name = "sql"

    def __init__(
        self,
        options: StoreOptions | None = None,
        *,
        engine: Engine | None = None,
        **overrides: Any,
    ) -> None:
        super().__init__(options, **overrides)
        self._metadata = MetaData()
        self._table = kv_table(self.options.table_name, self._metadata)
        self._owns_engine = engine is None

        try:
            self._engine = engine or create_kv_engine(self.options.database_url)
            self._metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Cannot open table {self.options.table_name!r}", cause=e
            ).with_context(store=self.name)

        self._start_sweeper()
        logger.info(
            "store_opened",
            store=self.name,
            url=self._engine.url.render_as_string(hide_password=True),
            table=self.options.table_name,
            codec=self._codec.name,
        )

    @property
    def table(self) -> Table:
        return self._table

    def set_ex(self, key: str, value: Any, ttl: TTL) -> None:
        check_key_and_value(key, value)
        check_ttl(ttl)

        item = new_item(self._codec.marshal(value), ttl)
        values = {
            "data": item.data,
            "expires_at": _naive_utc(item.expires_at),
            "updated_at": _naive_utc(utc_now()),
        }

        t = self._table
        try:
            try:
                with self._engine.begin() as conn:
                    conn.execute(insert(t).values(id=key, **values))
            except IntegrityError:
                with self._engine.begin() as conn:
                    conn.execute(update(t).where(t.c.id == key).values(**values))
        except SQLAlchemyError as e:
            raise StorageError("SQL upsert failed", cause=e).with_context(
                store=self.name, key=key, operation="set_ex"
            )

    def _load(self, key: str) -> Item | None:
        t = self._table
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    select(t.c.data, t.c.expires_at).where(t.c.id == key)
                ).first()
        except SQLAlchemyError as e:
            raise StorageError("SQL select failed", cause=e).with_context(
                store=self.name, key=key, operation="get"
            )

        if row is None:
            return None
        expires_at = row.expires_at.replace(tzinfo=UTC) if row.expires_at else None
        return Item(data=row.data, expires_at=expires_at)

    def get(self, key: str, target: Any = Any) -> tuple[bool, Any]:
        check_key_and_value(key, target)

        item = self._load(key)
        if item is None or item.is_expired():
            return False, None

        return True, self._codec.unmarshal(item.data, target)

    def has(self, key: str) -> bool:
        try:
            check_key(key)
            item = self._load(key)
        except KVError:
            return False
        return item is not None and not item.is_expired()

    def delete(self, key: str) -> None:
        check_key(key)

        t = self._table
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(t).where(t.c.id == key))
        except SQLAlchemyError as e:
            raise StorageError("SQL delete failed", cause=e).with_context(
                store=self.name, key=key, operation="delete"
            )

    def gc(self) -> int:
        now = _naive_utc(utc_now())
        logger.debug("gc_started", store=self.name, now=now.isoformat())

        t = self._table
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    delete(t).where(t.c.expires_at.is_not(None), t.c.expires_at < now)
                )
        except SQLAlchemyError as e:
            raise StorageError("SQL sweep failed", cause=e).with_context(
                store=self.name, operation="gc"
            )

        logger.info("gc_completed", store=self.name, removed=result.rowcount)
        return result.rowcount

    def _release(self) -> None:
        if self._owns_engine:
            self._engine.dispose()


__all__ = ["SQLStore", "create_kv_engine", "kv_table"]
