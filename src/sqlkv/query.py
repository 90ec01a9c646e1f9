"""
SQL statement builder for the kv table.

Every caller-supplied value is a bound parameter. Prefix matching is a
bound key range, ``k >= ? AND k < ?``, rather than LIKE: it is
case-sensitive, has no wildcard characters (so prefixes containing ``%`` or
``_`` match literally), and is served by the primary key index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlkv.exceptions import ValidationError
from sqlkv.types import KEY_SEPARATOR, ListOptions, OrderBy

TABLE = "kv"
COLUMNS = "k, v, created_at, updated_at"
NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"

# camelCase spellings accepted in option mappings
_OPTION_ALIASES = {
    "orderBy": "order_by",
    "includeExactMatch": "include_exact_match",
}


@dataclass(frozen=True)
class Statement:
    """A SQL string with its positional arguments."""

    sql: str
    args: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ListQuery:
    """The paged data query and the option-independent count query."""

    data: Statement
    count: Statement


def validate_key(key: Any) -> str:
    """Reject anything but a non-empty string key."""
    if not isinstance(key, str) or not key:
        raise ValidationError(
            "Key must be a non-empty string",
            context={"field": "key", "value": key},
        )
    return key


def scan_prefix(prefix: str) -> str:
    """Append the segment separator to a non-empty prefix lacking one."""
    if prefix and not prefix.endswith(KEY_SEPARATOR):
        return f"{prefix}{KEY_SEPARATOR}"
    return prefix


def normalize_options(
    options: ListOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> ListOptions:
    """Merge defaults, an options object or mapping, and keyword overrides.

    Raises:
        ValidationError: On unknown option names or invalid values.
    """
    if isinstance(options, ListOptions):
        merged: dict[str, Any] = {
            name: getattr(options, name) for name in ListOptions.field_names()
        }
    else:
        merged = dict(options or {})
    merged.update(overrides)

    normalized: dict[str, Any] = {}
    for name, value in merged.items():
        name = _OPTION_ALIASES.get(name, name)
        if name not in ListOptions.field_names():
            raise ValidationError(
                f"Unknown list option: {name}",
                context={"field": name, "expected": list(ListOptions.field_names())},
            )
        normalized[name] = value

    return ListOptions(**normalized)


def build_get(key: str) -> Statement:
    return Statement(f"SELECT {COLUMNS} FROM {TABLE} WHERE k = ?", (key,))


def build_set(key: str, encoded: str | bytes) -> list[Statement]:
    """Upsert followed by a readback of the stored row.

    ``created_at`` is left alone on conflict; ``updated_at`` is refreshed
    by the table's update trigger.
    """
    return [
        Statement(
            f"INSERT INTO {TABLE} (k, v) VALUES (?, ?) "
            "ON CONFLICT(k) DO UPDATE SET v = excluded.v",
            (key, encoded),
        ),
        build_get(key),
    ]


def build_delete(key: str) -> list[Statement]:
    """Readback of the prior row, the delete, and the store's clock."""
    return [
        build_get(key),
        Statement(f"DELETE FROM {TABLE} WHERE k = ?", (key,)),
        Statement(f"SELECT {NOW} AS now"),
    ]


def prefix_range(target: str) -> tuple[str, tuple[str, ...]]:
    """WHERE clause and args matching keys that start with ``target``.

    ``target`` is a scan prefix, so it is empty or ends with the separator.
    Bumping that last character gives the exclusive upper bound.
    """
    if not target:
        return "k >= ?", ("",)
    upper = target[:-1] + chr(ord(target[-1]) + 1)
    return "k >= ? AND k < ?", (target, upper)


def build_delete_all(prefix: str = "") -> Statement:
    """Delete every key under ``prefix``; an empty prefix deletes everything."""
    where, args = prefix_range(scan_prefix(prefix))
    return Statement(f"DELETE FROM {TABLE} WHERE {where}", args)


def _order_clause(order_by: OrderBy, reverse: bool) -> str:
    direction = "DESC" if reverse else "ASC"
    clause = f"{order_by.column} {direction}"
    if order_by is not OrderBy.KEY:
        # tie-breaker keeps equal values in a stable order
        clause += f", {OrderBy.KEY.column} {direction}"
    return clause


def build_list(prefix: str, options: ListOptions) -> ListQuery:
    """Build the paged data query and the count query for a prefix scan.

    With ``include_exact_match`` the caller's literal prefix is also matched
    as a whole key, even when it already ends with the separator.
    """
    if not isinstance(prefix, str):
        raise ValidationError(
            "Prefix must be a string",
            context={"field": "prefix", "value": prefix},
        )

    where, range_args = prefix_range(scan_prefix(prefix))
    args: tuple[Any, ...] = range_args

    if options.include_exact_match:
        where = f"({where} OR k = ?)"
        args += (prefix,)

    order = _order_clause(options.order_by, options.reverse)

    data = Statement(
        f"SELECT {COLUMNS} FROM {TABLE} WHERE {where} ORDER BY {order} LIMIT ? OFFSET ?",
        args + (options.limit, options.offset),
    )
    count = Statement(f"SELECT COUNT(*) AS total FROM {TABLE} WHERE {where}", args)
    return ListQuery(data=data, count=count)
