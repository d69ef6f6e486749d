"""Tests for kvspine.codec."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

import pytest
from pydantic import BaseModel

from kvspine.codec import JSON, PICKLE, Codec, JSONCodec, PickleCodec, coerce, get_codec
from kvspine.errors import ConfigError, DecodeError, EncodeError


class Product(BaseModel):
    sku: str
    price: float


@dataclass
class Point:
    x: int
    y: int


class TestCoerce:
    def test_any_is_identity(self):
        value = {"a": [1, 2]}
        assert coerce(value, Any) is value

    def test_builtin(self):
        assert coerce("42", int) == 42

    def test_generic(self):
        assert coerce({"a": "1"}, dict[str, int]) == {"a": 1}

    def test_model(self):
        assert coerce({"sku": "W-1", "price": 9.5}, Product) == Product(sku="W-1", price=9.5)

    def test_dataclass(self):
        assert coerce({"x": 1, "y": 2}, Point) == Point(1, 2)

    def test_mismatch_raises_decode_error(self):
        with pytest.raises(DecodeError) as exc_info:
            coerce("not-a-number", int)
        assert exc_info.value.cause is not None


class TestJSONCodec:
    def test_satisfies_protocol(self):
        assert isinstance(JSON, Codec)
        assert JSON.name == "json"

    def test_marshal_is_utf8_json(self):
        assert JSON.marshal({"a": "é"}) == b'{"a": "\\u00e9"}'

    def test_round_trip_untyped(self):
        assert JSON.unmarshal(JSON.marshal({"a": [1, 2]})) == {"a": [1, 2]}

    def test_model_round_trip(self):
        product = Product(sku="W-1", price=9.5)
        assert JSON.unmarshal(JSON.marshal(product), Product) == product

    def test_unmarshal_invalid_json(self):
        with pytest.raises(DecodeError):
            JSON.unmarshal(b"{not json")

    def test_unmarshal_invalid_utf8(self):
        with pytest.raises(DecodeError):
            JSON.unmarshal(b"\xff\xfe")

    def test_marshal_unsupported_type(self):
        with pytest.raises(EncodeError):
            JSON.marshal(object())


class TestPickleCodec:
    def test_satisfies_protocol(self):
        assert isinstance(PICKLE, Codec)
        assert PICKLE.name == "pickle"

    def test_round_trip_keeps_python_types(self):
        value = {"ids": {1, 2}, "pair": (1, "a")}
        assert PICKLE.unmarshal(PICKLE.marshal(value)) == value

    def test_protocol_argument(self):
        codec = PickleCodec(protocol=2)
        assert codec.unmarshal(codec.marshal([1, 2])) == [1, 2]

    def test_unmarshal_garbage(self):
        with pytest.raises(DecodeError):
            PICKLE.unmarshal(b"garbage")

    @pytest.mark.parametrize("data", [b"\x80\x09garbage", b"\x80\x04K", b""])
    def test_unmarshal_corrupt_payload(self, data):
        with pytest.raises(DecodeError) as exc_info:
            PICKLE.unmarshal(data)
        assert exc_info.value.cause is not None

    def test_marshal_unpicklable(self):
        with pytest.raises(EncodeError):
            PICKLE.marshal(threading.Lock())


class TestGetCodec:
    def test_by_name(self):
        assert get_codec("json") is JSON
        assert get_codec("pickle") is PICKLE

    def test_case_insensitive(self):
        assert get_codec("JSON") is JSON

    def test_instance_passthrough(self):
        codec = JSONCodec()
        assert get_codec(codec) is codec

    def test_unknown_name(self):
        with pytest.raises(ConfigError) as exc_info:
            get_codec("yaml")
        assert "yaml" in str(exc_info.value)
