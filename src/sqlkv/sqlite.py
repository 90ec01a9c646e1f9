"""
SQLite backing client built on aiosqlite.

The connection runs in autocommit mode and transactions are managed with
explicit BEGIN/COMMIT statements. A batch issued while a transaction is
already open runs inside a SAVEPOINT so it stays atomic without ending the
outer transaction.

When a replica path is configured, sync() copies the primary database into
the replica file with SQLite's online backup API, optionally on a timer.
A backup never runs while a batch or transaction is in flight.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from pathlib import Path
from typing import Callable, Sequence

import aiosqlite

from sqlkv.client import Capabilities, ResultSet
from sqlkv.exceptions import ConfigurationError
from sqlkv.logging import get_logger
from sqlkv.query import Statement
from sqlkv.types import TransactionMode, generate_id

logger = get_logger(__name__)

MEMORY = ":memory:"
REMOTE_SCHEMES = ("libsql://", "http://", "https://", "ws://", "wss://")
_SAVEPOINT = "kv_batch"


async def _run(db: aiosqlite.Connection, statement: Statement) -> ResultSet:
    async with db.execute(statement.sql, statement.args) as cursor:
        rows = await cursor.fetchall()
        return ResultSet(
            rows=[dict(row) for row in rows],
            rows_affected=max(cursor.rowcount, 0),
        )


async def _run_batch(
    db: aiosqlite.Connection,
    statements: Sequence[Statement],
    mode: TransactionMode,
) -> list[ResultSet]:
    """Run statements atomically on ``db``."""
    nested = db.in_transaction
    read_only = mode is TransactionMode.READ and not nested

    if nested:
        await db.execute(f"SAVEPOINT {_SAVEPOINT}")
    else:
        if read_only:
            await db.execute("PRAGMA query_only = ON")
        await db.execute("BEGIN DEFERRED" if read_only else "BEGIN IMMEDIATE")

    try:
        results = [await _run(db, statement) for statement in statements]
    except BaseException:
        if nested:
            await db.execute(f"ROLLBACK TO {_SAVEPOINT}")
            await db.execute(f"RELEASE {_SAVEPOINT}")
        else:
            await db.execute("ROLLBACK")
        raise
    else:
        await db.execute(f"RELEASE {_SAVEPOINT}" if nested else "COMMIT")
    finally:
        if read_only:
            await db.execute("PRAGMA query_only = OFF")

    return results


class SQLiteTransaction:
    """Transaction handle over a SQLiteClient connection.

    The handle only counts as resolved once COMMIT or ROLLBACK has actually
    succeeded, so a failed COMMIT can still be rolled back. Any call after
    resolution or close raises RuntimeError.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        mode: TransactionMode,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._db = db
        self.mode = mode
        self.tx_id = generate_id("tx")
        self._on_close = on_close
        self._resolved = False
        self._closed = False

    async def begin(self) -> None:
        if self.mode is TransactionMode.READ:
            await self._db.execute("BEGIN DEFERRED")
            await self._db.execute("PRAGMA query_only = ON")
        else:
            await self._db.execute("BEGIN IMMEDIATE")
        logger.debug("Transaction started", tx_id=self.tx_id, mode=self.mode.value)

    def _check_active(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is closed")
        if self._resolved:
            raise RuntimeError("Transaction has already been committed or rolled back")

    async def _resolve(self) -> None:
        self._resolved = True
        if self.mode is TransactionMode.READ:
            await self._db.execute("PRAGMA query_only = OFF")

    async def _rollback(self) -> None:
        # SQLite may already have rolled back on its own after some errors
        if self._db.in_transaction:
            await self._db.execute("ROLLBACK")
        await self._resolve()

    async def execute(self, statement: Statement) -> ResultSet:
        self._check_active()
        return await _run(self._db, statement)

    async def batch(self, statements: Sequence[Statement]) -> list[ResultSet]:
        self._check_active()
        return await _run_batch(self._db, statements, TransactionMode.WRITE)

    async def commit(self) -> None:
        self._check_active()
        await self._db.execute("COMMIT")
        await self._resolve()
        logger.debug("Transaction committed", tx_id=self.tx_id)

    async def rollback(self) -> None:
        self._check_active()
        await self._rollback()
        logger.debug("Transaction rolled back", tx_id=self.tx_id)

    async def close(self) -> None:
        """Release the handle, rolling back if still unresolved."""
        if self._closed:
            return
        try:
            if not self._resolved:
                await self._rollback()
        finally:
            self._closed = True
            if self._on_close is not None:
                self._on_close()


class SQLiteClient:
    """Async SQLite connection implementing the backing client contract.

    Batches and transactions are tracked while they are in flight. The
    replica backup only runs once none are, because a backup issued on a
    connection holding an open transaction never completes.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        location: str,
        replica_path: Path | None = None,
        sync_interval: float | None = None,
    ) -> None:
        self._db = db
        self.location = location
        self.replica_path = replica_path
        self.sync_interval = sync_interval
        self._sync_task: asyncio.Task[None] | None = None
        self._in_flight = 0
        self._open_transactions = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @classmethod
    async def connect(
        cls,
        location: str,
        *,
        replica_path: str | Path | None = None,
        sync_interval: float | None = None,
    ) -> SQLiteClient:
        """Open a connection to ``location``.

        Args:
            location: Filesystem path, ":memory:", or a "file:" URI.
            replica_path: Optional local file kept in sync with the primary.
            sync_interval: Seconds between automatic replica syncs.

        Raises:
            ConfigurationError: If location is empty or a remote URL.
        """
        if not location:
            raise ConfigurationError("Database location missing")
        if location.startswith(REMOTE_SCHEMES):
            raise ConfigurationError(
                "Remote locations are not supported by the SQLite client",
                context={"location": location},
            )

        if location != MEMORY and not location.startswith("file:"):
            Path(location).parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(location, isolation_level=None, uri=True)
        db.row_factory = aiosqlite.Row

        replica = Path(replica_path) if replica_path else None
        if replica is not None:
            replica.parent.mkdir(parents=True, exist_ok=True)

        client = cls(db, location, replica, sync_interval)
        if replica is not None and sync_interval:
            client._sync_task = asyncio.create_task(client._sync_loop())

        logger.info(
            "SQLite client connected",
            location=location,
            replica=str(replica) if replica else None,
        )
        return client

    @property
    def capabilities(self) -> Capabilities:
        return Capabilities(sync=self.replica_path is not None)

    def _acquire(self, transaction: bool = False) -> None:
        self._in_flight += 1
        if transaction:
            self._open_transactions += 1
        self._idle.clear()

    def _release(self, transaction: bool = False) -> None:
        self._in_flight -= 1
        if transaction:
            self._open_transactions -= 1
        if not self._in_flight:
            self._idle.set()

    async def execute(self, statement: Statement) -> ResultSet:
        return await _run(self._db, statement)

    async def batch(
        self,
        statements: Sequence[Statement],
        mode: TransactionMode = TransactionMode.WRITE,
    ) -> list[ResultSet]:
        self._acquire()
        try:
            return await _run_batch(self._db, statements, mode)
        finally:
            self._release()

    async def transaction(
        self, mode: TransactionMode = TransactionMode.WRITE
    ) -> SQLiteTransaction:
        self._acquire(transaction=True)
        tx = SQLiteTransaction(
            self._db,
            TransactionMode(mode),
            on_close=lambda: self._release(transaction=True),
        )
        try:
            await tx.begin()
        except BaseException:
            await tx.close()
            raise
        return tx

    async def sync(self) -> None:
        """Copy the primary database into the replica file.

        Raises:
            RuntimeError: If no replica is configured, or a transaction is
                open on this connection.
        """
        if self.replica_path is None:
            raise RuntimeError("No replica configured for this client")
        if self._open_transactions:
            raise RuntimeError("Cannot sync the replica while a transaction is open")
        await self._backup()

    async def _backup(self) -> None:
        async with aiosqlite.connect(self.replica_path) as replica:
            while self._in_flight:
                await self._idle.wait()
            # nothing may yield between the idle check and queueing the backup
            await self._db.backup(replica)
        logger.debug("Replica synced", replica=str(self.replica_path))

    async def _sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sync_interval)
            try:
                await self._backup()
            except Exception as e:
                logger.warning("Periodic replica sync failed", error=str(e))

    async def close(self) -> None:
        if self._sync_task is not None:
            self._sync_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._sync_task
            self._sync_task = None

        await self._db.close()
        logger.info("SQLite client closed", location=self.location)
