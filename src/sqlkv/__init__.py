"""
sqlkv: a key-value store on top of a relational backing store.

Typical use:

    kv = await open_kv("data/kv.db", event_listener=print)
    await kv.set("scores:alice", 42)
    page = await kv.list("scores", limit=10, order_by="value", reverse=True)
    await kv.close()
"""

from sqlkv.config import KVConfig
from sqlkv.exceptions import (
    ConfigurationError,
    DecodeError,
    KVError,
    SqlKVError,
    ValidationError,
)
from sqlkv.session import KVSession, open_kv
from sqlkv.types import (
    ChangeEvent,
    EventKind,
    ListMeta,
    ListOptions,
    ListResult,
    OrderBy,
    Record,
    TransactionMode,
)

__version__ = "0.1.0"

__all__ = [
    "ChangeEvent",
    "ConfigurationError",
    "DecodeError",
    "EventKind",
    "KVConfig",
    "KVError",
    "KVSession",
    "ListMeta",
    "ListOptions",
    "ListResult",
    "OrderBy",
    "Record",
    "SqlKVError",
    "TransactionMode",
    "ValidationError",
    "open_kv",
    "__version__",
]
