"""
Backing-store client contract.

The session talks to the store only through these protocols. What a session
is bound to is modelled explicitly as BoundConnection or BoundTransaction
instead of probing the handle for methods at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, Union, runtime_checkable

from sqlkv.query import Statement
from sqlkv.types import TransactionMode


@dataclass
class ResultSet:
    """Rows produced by one statement."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    rows_affected: int = 0

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None


@runtime_checkable
class TransactionHandle(Protocol):
    """An in-flight backing transaction."""

    async def execute(self, statement: Statement) -> ResultSet: ...

    async def batch(self, statements: Sequence[Statement]) -> list[ResultSet]: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class Client(Protocol):
    """A long-lived connection to the backing store."""

    async def execute(self, statement: Statement) -> ResultSet: ...

    async def batch(
        self,
        statements: Sequence[Statement],
        mode: TransactionMode = TransactionMode.WRITE,
    ) -> list[ResultSet]:
        """Run statements atomically, one ResultSet per statement."""
        ...

    async def transaction(
        self, mode: TransactionMode = TransactionMode.WRITE
    ) -> TransactionHandle: ...

    async def sync(self) -> None:
        """Refresh the embedded replica; only called when capabilities.sync."""
        ...

    @property
    def capabilities(self) -> Capabilities: ...

    async def close(self) -> None: ...


@dataclass(frozen=True)
class Capabilities:
    """Optional features of a backing connection."""

    sync: bool = False


@dataclass(frozen=True)
class BoundConnection:
    """Session bound to a long-lived connection (root session)."""

    client: Client
    capabilities: Capabilities = Capabilities()


@dataclass(frozen=True)
class BoundTransaction:
    """Session bound to an in-flight transaction (nested session)."""

    handle: TransactionHandle


Binding = Union[BoundConnection, BoundTransaction]
