"""
Record codec.

Values are stored in the ``v`` column either as raw bytes (BLOB) or as
orjson-encoded UTF-8 text. ``None`` is never stored: it is the delete
sentinel and callers route it to a delete instead of encoding it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

import orjson

from sqlkv.exceptions import DecodeError, ValidationError
from sqlkv.types import Record

DELETE = None

_BINARY_TYPES = (bytes, bytearray, memoryview)


def is_delete(value: Any) -> bool:
    """Return True if ``value`` is the delete sentinel."""
    return value is DELETE


def encode(value: Any) -> str | bytes:
    """Encode a value for the ``v`` column.

    Args:
        value: Any JSON-serializable value, or bytes-like data.

    Returns:
        Bytes for binary values, JSON text for everything else.

    Raises:
        ValidationError: If value is the delete sentinel or is not serializable.
    """
    if is_delete(value):
        raise ValidationError(
            "None cannot be stored; delete the key instead",
            context={"field": "value"},
        )

    if isinstance(value, _BINARY_TYPES):
        return bytes(value)

    try:
        return orjson.dumps(value).decode("utf-8")
    except TypeError as e:
        raise ValidationError(
            "Value is not JSON serializable",
            context={"field": "value", "type": type(value).__name__, "error": str(e)},
        ) from e


def decode(raw: str | bytes) -> Any:
    """Decode a stored ``v`` column value.

    Raises:
        DecodeError: If the stored payload is not valid for its encoding.
    """
    if isinstance(raw, bytes):
        return raw

    if not isinstance(raw, str):
        raise DecodeError(
            "Unexpected stored value type",
            context={"type": type(raw).__name__},
        )

    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise DecodeError(
            "Stored value is not valid JSON",
            context={"payload": raw[:80]},
        ) from e


def parse_timestamp(raw: str | datetime) -> datetime:
    """Parse a timestamp column written by the backing store (UTC)."""
    if isinstance(raw, datetime):
        parsed = raw
    else:
        try:
            parsed = datetime.fromisoformat(raw)
        except (TypeError, ValueError) as e:
            raise DecodeError(
                "Stored timestamp is malformed",
                context={"timestamp": raw},
            ) from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def decode_record(row: Mapping[str, Any]) -> Record:
    """Normalize a ``k, v, created_at, updated_at`` row into a Record."""
    return Record(
        key=row["k"],
        value=decode(row["v"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )
