"""
Tests for the record codec.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from sqlkv import codec
from sqlkv.exceptions import DecodeError, KVError, ValidationError


class TestEncode:
    """Test value encoding."""

    def test_encode_json_values_as_text(self) -> None:
        """Test JSON values become compact JSON text."""
        assert codec.encode("str") == '"str"'
        assert codec.encode(123) == "123"
        assert codec.encode(True) == "true"
        assert codec.encode({"json": "object"}) == '{"json":"object"}'
        assert codec.encode([1, "two"]) == '[1,"two"]'

    def test_encode_bytes_passthrough(self) -> None:
        """Test binary values are stored natively."""
        assert codec.encode(b"\x00\x01") == b"\x00\x01"
        assert codec.encode(bytearray(b"ab")) == b"ab"
        assert codec.encode(memoryview(b"cd")) == b"cd"

    def test_encode_none_rejected(self) -> None:
        """Test the delete sentinel cannot be encoded."""
        with pytest.raises(ValidationError):
            codec.encode(None)

    def test_encode_unserializable_rejected(self) -> None:
        """Test values orjson cannot serialize raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            codec.encode({1, 2, 3})
        assert exc_info.value.context["type"] == "set"

    def test_is_delete(self) -> None:
        assert codec.is_delete(None)
        assert not codec.is_delete(0)
        assert not codec.is_delete("")
        assert not codec.is_delete(False)


class TestDecode:
    """Test value decoding."""

    def test_decode_inverts_encode(self) -> None:
        value = {"nested": {"list": [1, 2.5, "x", False]}, "n": -4}
        assert codec.decode(codec.encode(value)) == value

    def test_decode_bytes(self) -> None:
        assert codec.decode(b"raw") == b"raw"

    def test_decode_malformed_raises_decode_error(self) -> None:
        """Test malformed payloads raise DecodeError, which is a KVError."""
        with pytest.raises(DecodeError) as exc_info:
            codec.decode("{not json")

        assert isinstance(exc_info.value, KVError)
        assert exc_info.value.cause is not None

    def test_decode_unexpected_type(self) -> None:
        with pytest.raises(DecodeError):
            codec.decode(12)  # type: ignore[arg-type]


class TestDecodeRecord:
    """Test row normalization."""

    def test_decode_record(self) -> None:
        row = {
            "k": "users:1",
            "v": '{"name":"Ada"}',
            "created_at": "2024-05-01 10:00:00.123",
            "updated_at": "2024-05-02 11:30:00.000",
        }

        record = codec.decode_record(row)

        assert record.key == "users:1"
        assert record.value == {"name": "Ada"}
        assert record.created_at == datetime(2024, 5, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)
        assert record.updated_at.tzinfo is timezone.utc

    def test_decode_record_bad_timestamp(self) -> None:
        row = {"k": "a", "v": "1", "created_at": "yesterday", "updated_at": "today"}
        with pytest.raises(DecodeError):
            codec.decode_record(row)

    def test_to_dict(self) -> None:
        row = {
            "k": "a",
            "v": "1",
            "created_at": "2024-05-01 10:00:00.000",
            "updated_at": "2024-05-01 10:00:00.000",
        }
        data = codec.decode_record(row).to_dict()
        assert data["key"] == "a"
        assert data["value"] == 1
        assert data["created_at"].startswith("2024-05-01T10:00:00")
