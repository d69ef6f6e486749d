"""
Item: the stored record pairing a value with its optional expiry instant.

An Item whose ``expires_at`` is ``None`` never expires. Otherwise it is live
up to and including ``expires_at`` and expired strictly after it.

Examples:
    >>> item = new_item(b"1", ttl=0)
    >>> item.expires_at is None
    True
    >>> item.is_expired()
    False

    >>> item = new_item(b"1", ttl=timedelta(seconds=5))
    >>> item.is_expired(item.expires_at)
    False
    >>> item.is_expired(item.expires_at + timedelta(microseconds=1))
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from kvspine.errors import DecodeError


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def to_timedelta(ttl: float | int | timedelta) -> timedelta:
    """Normalize a ttl given in seconds or as a timedelta."""
    if isinstance(ttl, timedelta):
        return ttl
    return timedelta(seconds=ttl)


@dataclass(slots=True)
class Item:
    # expires_at is None for "never expires"
    data: Any
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        if now is None:
            now = utc_now()
        return now > self.expires_at

    def to_record(self) -> dict[str, Any]:
        """Plain-dict form written by backends that encode the whole record."""
        return {
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "data": self.data,
        }

    @classmethod
    def from_record(cls, record: Any) -> Item:
        if not isinstance(record, dict) or "data" not in record or "expires_at" not in record:
            raise DecodeError("Stored record is missing 'expires_at' or 'data'")

        raw = record["expires_at"]
        if raw is None or isinstance(raw, datetime):
            expires_at = raw
        else:
            try:
                expires_at = datetime.fromisoformat(raw)
            except (TypeError, ValueError) as e:
                raise DecodeError(f"Invalid expires_at in stored record: {raw!r}", cause=e)

        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)

        return cls(data=record["data"], expires_at=expires_at)


def new_item(data: Any, ttl: float | int | timedelta = 0) -> Item:
    """Wrap data in an Item expiring ``ttl`` from now (0 means never)."""
    delta = to_timedelta(ttl)
    if not delta:
        return Item(data=data)
    return Item(data=data, expires_at=utc_now() + delta)


__all__ = ["Item", "new_item", "to_timedelta", "utc_now"]
