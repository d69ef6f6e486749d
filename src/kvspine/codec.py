"""
Codecs: pluggable conversion between values and bytes.

A codec is anything with ``marshal(value) -> bytes`` and
``unmarshal(data, target) -> value``. Stores never inspect payloads; they
hand them to the codec they were built with.

Typed decoding goes through pydantic's ``TypeAdapter``, so ``target`` can be
any type pydantic validates: builtins, generics such as ``dict[str, int]``,
dataclasses, ``BaseModel`` subclasses, or ``Any`` for "whatever was stored".

Examples:
    >>> JSON.unmarshal(JSON.marshal({"a": 1}), dict[str, int])
    {'a': 1}
    >>> PICKLE.unmarshal(PICKLE.marshal({1, 2}), set[int])
    {1, 2}
"""

from __future__ import annotations

import json
import pickle
from functools import lru_cache
from typing import Any, Protocol, runtime_checkable

from pydantic import PydanticSchemaGenerationError, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from kvspine.errors import ConfigError, DecodeError, EncodeError


@runtime_checkable
class Codec(Protocol):
    """Contract for value <-> bytes conversion."""

    name: str

    def marshal(self, value: Any) -> bytes:
        """Encode value. Raises EncodeError."""
        ...

    def unmarshal(self, data: bytes, target: Any = Any) -> Any:
        """Decode data into an instance of target. Raises DecodeError."""
        ...


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def coerce(value: Any, target: Any = Any) -> Any:
    """Validate an already-decoded value against target."""
    if target is Any:
        return value
    try:
        return _adapter(target).validate_python(value)
    except PydanticValidationError as e:
        raise DecodeError(f"Stored value does not match {target!r}", cause=e)
    except (PydanticSchemaGenerationError, TypeError) as e:
        raise DecodeError(f"Cannot decode into {target!r}", cause=e)


class JSONCodec:
    """UTF-8 JSON; models and dataclasses are dumped through pydantic."""

    name = "json"

    def marshal(self, value: Any) -> bytes:
        try:
            return json.dumps(to_jsonable_python(value)).encode("utf-8")
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise EncodeError(f"Cannot encode {type(value).__name__} as JSON", cause=e)

    def unmarshal(self, data: bytes, target: Any = Any) -> Any:
        try:
            decoded = json.loads(data)
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError("Payload is not valid JSON", cause=e)
        return coerce(decoded, target)


class PickleCodec:
    """Python pickle; only use with trusted storage."""

    name = "pickle"

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL) -> None:
        self._protocol = protocol

    def marshal(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=self._protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise EncodeError(f"Cannot pickle {type(value).__name__}", cause=e)

    def unmarshal(self, data: bytes, target: Any = Any) -> Any:
        try:
            decoded = pickle.loads(data)
        except Exception as e:
            # loads() can raise nearly anything on a corrupt payload
            raise DecodeError("Payload is not a valid pickle", cause=e)
        return coerce(decoded, target)


JSON = JSONCodec()
PICKLE = PickleCodec()

_CODECS: dict[str, Codec] = {
    JSON.name: JSON,
    PICKLE.name: PICKLE,
}


def get_codec(codec: str | Codec) -> Codec:
    """Resolve a codec by name; codec instances are returned unchanged."""
    if not isinstance(codec, str):
        return codec
    try:
        return _CODECS[codec.lower()]
    except KeyError:
        raise ConfigError(
            f"Unknown codec {codec!r} (expected one of: {', '.join(sorted(_CODECS))})"
        ) from None


__all__ = [
    "Codec",
    "JSONCodec",
    "PickleCodec",
    "JSON",
    "PICKLE",
    "coerce",
    "get_codec",
]
