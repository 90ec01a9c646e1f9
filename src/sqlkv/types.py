"""
Core types for sqlkv.

This module defines the data structures shared by the codec, the query
builder, the event layer and the session:
- Enums for ordering columns, event kinds and transaction modes
- Frozen dataclasses for records, list options and list results
- The change event passed to listeners
- A helper for ID generation
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from uuid6 import uuid7

from sqlkv.exceptions import ValidationError

KEY_SEPARATOR = ":"
DEFAULT_LIST_LIMIT = 100


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "kv", "tx")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


class OrderBy(str, Enum):
    """Columns a list query may be ordered by."""

    KEY = "key"
    VALUE = "value"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"

    @property
    def column(self) -> str:
        """Name of the backing column."""
        return _ORDER_COLUMNS[self]


_ORDER_COLUMNS = {
    OrderBy.KEY: "k",
    OrderBy.VALUE: "v",
    OrderBy.CREATED_AT: "created_at",
    OrderBy.UPDATED_AT: "updated_at",
}


class EventKind(str, Enum):
    """Kinds of change events."""

    SET = "set"
    DELETE = "delete"


class TransactionMode(str, Enum):
    """Mode requested when opening a backing transaction."""

    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class Record:
    """A single key/value row as returned by get, set and list."""

    key: str
    value: Any
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict with ISO timestamps."""
        return {
            "key": self.key,
            "value": self.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class ListOptions:
    """Pagination, ordering and matching options for ``KVSession.list``.

    ``order_by`` accepts an ``OrderBy`` or its string value. Invalid values
    are rejected here, so a bad request never reaches the backing store.
    """

    limit: int = DEFAULT_LIST_LIMIT
    offset: int = 0
    reverse: bool = False
    order_by: OrderBy = OrderBy.KEY
    include_exact_match: bool = False

    def __post_init__(self) -> None:
        try:
            order_by = OrderBy(self.order_by)
        except ValueError:
            raise ValidationError(
                f"Invalid orderBy column: {self.order_by}",
                context={
                    "field": "order_by",
                    "value": self.order_by,
                    "expected": [o.value for o in OrderBy],
                },
            ) from None
        object.__setattr__(self, "order_by", order_by)

        for name in ("limit", "offset"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(
                    f"{name} must be a non-negative integer",
                    context={"field": name, "value": value},
                )

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))


@dataclass(frozen=True)
class ListMeta:
    """The options a list call ran with, plus the total match count."""

    total: int
    limit: int
    offset: int
    reverse: bool
    order_by: OrderBy
    include_exact_match: bool

    @classmethod
    def create(cls, options: ListOptions, total: int) -> ListMeta:
        return cls(total=total, **asdict(options))


@dataclass(frozen=True)
class ListResult:
    """Output of ``KVSession.list``."""

    data: list[Record]
    meta: ListMeta

    @property
    def total(self) -> int:
        return self.meta.total


@dataclass(frozen=True)
class ChangeEvent:
    """Notification handed to the event listener after a set or delete.

    Delete events carry a record whose value is ``None``.
    """

    kind: EventKind
    record: Record

    @classmethod
    def set(cls, record: Record) -> ChangeEvent:
        return cls(kind=EventKind.SET, record=record)

    @classmethod
    def delete(cls, record: Record) -> ChangeEvent:
        return cls(kind=EventKind.DELETE, record=record)


EventListener = Callable[[ChangeEvent], Union[Awaitable[None], None]]
