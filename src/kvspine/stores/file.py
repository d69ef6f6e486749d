"""File backend: one file per key in a directory."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from kvspine.codec import coerce
from kvspine.errors import DecodeError, KVError, StorageError
from kvspine.item import Item, new_item, utc_now
from kvspine.locks import KeyLockRegistry
from kvspine.logging import get_logger
from kvspine.settings import StoreOptions
from kvspine.stores.base import TTL, BaseStore
from kvspine.validation import check_key, check_key_and_value, check_ttl

logger = get_logger(__name__)


def escape_key(key: str) -> str:
    """Escape a key into a single safe path component.

    Every character except ``A-Za-z0-9_-~`` is percent-encoded, including
    ``/`` and ``.``, so ``"."`` and ``".."`` cannot name a directory.
    """
    return quote(key, safe="").replace(".", "%2E")


def unescape_key(escaped: str) -> str:
    """Inverse of :func:`escape_key`."""
    return unquote(escaped)


class FileStore(BaseStore):
    """
    Stores each key as ``<directory>/<escaped key>[.<extension>]``.

    File content is the codec-encoded record ``{"expires_at", "data"}``.
    Access to each file is serialized by a per-key reader/writer lock from a
    :class:`~kvspine.locks.KeyLockRegistry`: different keys never block each
    other, writers on the same key are exclusive, readers share. Files are
    read and written under the lock and decoded outside it.

    Writes overwrite the whole file in place; there is no temp-file rename,
    so a process crash mid-write can leave a truncated file. Such a file
    makes ``get`` raise ``DecodeError`` and ``has`` return False.

    Example:
        store = FileStore(directory="/var/lib/app/kv", filename_extension="json")
        store.set_ex("user/42", {"name": "Alice"}, ttl=3600)
        # -> /var/lib/app/kv/user%2F42.json
    """

    name = "file"

    def __init__(self, options: StoreOptions | None = None, **overrides: Any) -> None:
        super().__init__(options, **overrides)
        self._directory = Path(self.options.directory)
        self._extension = self.options.filename_extension or ""
        self._locks = KeyLockRegistry()

        try:
            self._directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create store directory {self._directory}", cause=e
            ).with_context(store=self.name, path=str(self._directory))

        self._start_sweeper()
        logger.info(
            "store_opened",
            store=self.name,
            directory=str(self._directory),
            extension=self._extension,
            codec=self._codec.name,
        )

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """Filesystem path the value for ``key`` is stored at."""
        filename = escape_key(key)
        if self._extension:
            filename += "." + self._extension
        return self._directory / filename

    def _key_for(self, filename: str) -> str | None:
        """Logical key stored in ``filename``, or None if it is not one of ours."""
        stem = filename
        if self._extension:
            suffix = "." + self._extension
            if not filename.endswith(suffix):
                return None
            stem = filename[: -len(suffix)]
        key = unescape_key(stem)
        if not key or escape_key(key) != stem:
            return None
        return key

    def set_ex(self, key: str, value: Any, ttl: TTL) -> None:
        check_key_and_value(key, value)
        check_ttl(ttl)

        data = self._codec.marshal(new_item(value, ttl).to_record())
        path = self.path_for(key)

        with self._locks.write(escape_key(key)):
            try:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
            except OSError as e:
                raise StorageError(f"Cannot write {path}", cause=e).with_context(
                    store=self.name, key=key, path=str(path), operation="set_ex"
                )

    def _read(self, key: str) -> bytes | None:
        path = self.path_for(key)
        with self._locks.read(escape_key(key)):
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None
            except OSError as e:
                raise StorageError(f"Cannot read {path}", cause=e).with_context(
                    store=self.name, key=key, path=str(path), operation="get"
                )

    def _decode(self, data: bytes) -> Item:
        return Item.from_record(self._codec.unmarshal(data))

    def get(self, key: str, target: Any = Any) -> tuple[bool, Any]:
        check_key_and_value(key, target)

        data = self._read(key)
        if data is None:
            return False, None

        item = self._decode(data)
        if item.is_expired():
            return False, None

        return True, coerce(item.data, target)

    def has(self, key: str) -> bool:
        try:
            found, _ = self.get(key)
        except KVError:
            return False
        return found

    def delete(self, key: str) -> None:
        check_key(key)

        path = self.path_for(key)
        with self._locks.write(escape_key(key)):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageError(f"Cannot delete {path}", cause=e).with_context(
                    store=self.name, key=key, path=str(path), operation="delete"
                )

    def gc(self) -> int:
        """Remove expired files.

        Each file is checked under its key's write lock. The first unreadable
        or undecodable file aborts the sweep; later files wait for the next
        one.
        """
        logger.info("gc_started", store=self.name, directory=str(self._directory))
        now = utc_now()
        removed = 0

        try:
            with os.scandir(self._directory) as entries:
                filenames = [e.name for e in entries if e.is_file(follow_symlinks=False)]
        except OSError as e:
            raise StorageError(f"Cannot list {self._directory}", cause=e).with_context(
                store=self.name, path=str(self._directory), operation="gc"
            )

        for filename in filenames:
            key = self._key_for(filename)
            if key is None:
                continue

            path = self.path_for(key)
            with self._locks.write(escape_key(key)):
                try:
                    item = self._decode(path.read_bytes())
                    if item.is_expired(now):
                        path.unlink()
                        removed += 1
                except FileNotFoundError:
                    # deleted since the listing
                    continue
                except (OSError, DecodeError) as e:
                    logger.error("gc_aborted", store=self.name, path=str(path), removed=removed)
                    raise StorageError(f"Sweep aborted at {path}", cause=e).with_context(
                        store=self.name, key=key, path=str(path), operation="gc"
                    )

        logger.info("gc_completed", store=self.name, removed=removed)
        return removed

    def _release(self) -> None:
        """No-op: files stay on disk and the lock registry drains on its own."""


__all__ = ["FileStore", "escape_key", "unescape_key"]
