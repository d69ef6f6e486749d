"""Input checks run by every store operation before touching storage."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from kvspine.errors import InvalidKeyError, InvalidValueError


def check_key(key: Any) -> None:
    """Raise InvalidKeyError if key is not a non-empty string."""
    if not isinstance(key, str):
        raise InvalidKeyError(
            f"The passed key must be a string, got {type(key).__name__}",
            field="key",
            value=key,
        )
    if key == "":
        raise InvalidKeyError(
            "The passed key is an empty string, which is invalid",
            field="key",
        )
    try:
        key.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidKeyError(
            "The passed key is not valid UTF-8",
            field="key",
            value=key,
            cause=e,
        )


def check_value(value: Any) -> None:
    """Raise InvalidValueError if value is None."""
    if value is None:
        raise InvalidValueError(
            "The passed value is None, which is not allowed",
            field="value",
        )


def check_key_and_value(key: Any, value: Any) -> None:
    """Run check_key then check_value, stopping at the first failure."""
    check_key(key)
    check_value(value)


def check_ttl(ttl: Any) -> None:
    """Raise InvalidValueError unless ttl is a non-negative number or timedelta."""
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float, timedelta)):
        raise InvalidValueError(
            f"ttl must be seconds or a timedelta, got {type(ttl).__name__}",
            field="ttl",
            value=ttl,
        )
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else ttl
    if seconds < 0:
        raise InvalidValueError("ttl must not be negative", field="ttl", value=ttl)


__all__ = ["check_key", "check_value", "check_key_and_value", "check_ttl"]
