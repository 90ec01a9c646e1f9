"""
KV session: the public key-value interface over a backing SQL client.

A root session is bound to a long-lived connection. ``transaction()`` creates
a nested session bound to a transaction handle; events it emits are buffered
and only reach the listener once the transaction has committed.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Generator, Mapping, TypeVar

from sqlkv import codec, query
from sqlkv.client import (
    Binding,
    BoundConnection,
    BoundTransaction,
    ResultSet,
    TransactionHandle,
)
from sqlkv.config import KVConfig
from sqlkv.events import EventBuffer, EventNotifier
from sqlkv.exceptions import ConfigurationError, KVError, ValidationError
from sqlkv.logging import get_logger, log_context
from sqlkv.query import Statement
from sqlkv.schema import setup_database
from sqlkv.sqlite import SQLiteClient
from sqlkv.types import (
    ChangeEvent,
    ListMeta,
    ListOptions,
    ListResult,
    Record,
    TransactionMode,
    generate_id,
)

logger = get_logger(__name__)

T = TypeVar("T")

_PASSTHROUGH = (KVError, ValidationError, ConfigurationError)


@contextmanager
def _boundary(operation: str, **context: Any) -> Generator[None, None, None]:
    """Re-raise backing-store failures as KVError."""
    try:
        yield
    except _PASSTHROUGH:
        raise
    except Exception as e:
        raise KVError(
            f"{operation} failed: {e}",
            context={"operation": operation, **context},
        ) from e


class KVSession:
    """Key-value operations bound to a connection or a transaction.

    Sessions are created by ``open_kv`` (root) or handed to a
    ``transaction()`` callback (nested). A nested session is only valid
    while its callback runs.
    """

    def __init__(
        self,
        binding: Binding,
        notifier: EventNotifier | None = None,
        session_id: str | None = None,
    ) -> None:
        self._binding = binding
        self._notifier = notifier or EventNotifier()
        self.session_id = session_id or generate_id("kv")
        self._buffer: EventBuffer | None = (
            EventBuffer() if isinstance(binding, BoundTransaction) else None
        )

    async def __aenter__(self) -> KVSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if not self.is_transaction():
            await self.close()

    # -- backing access -----------------------------------------------------

    async def _execute(self, statement: Statement) -> ResultSet:
        if isinstance(self._binding, BoundTransaction):
            return await self._binding.handle.execute(statement)
        return await self._binding.client.execute(statement)

    async def _batch(
        self,
        statements: list[Statement],
        mode: TransactionMode = TransactionMode.WRITE,
    ) -> list[ResultSet]:
        if isinstance(self._binding, BoundTransaction):
            return await self._binding.handle.batch(statements)
        return await self._binding.client.batch(statements, mode)

    async def _emit(self, event: ChangeEvent) -> None:
        if self._buffer is not None:
            self._buffer.append(event)
        else:
            await self._notifier.notify(event)

    # -- public operations --------------------------------------------------

    def is_transaction(self) -> bool:
        """True if this session is bound to a transaction."""
        return isinstance(self._binding, BoundTransaction)

    async def set(self, key: str, value: Any) -> Record | None:
        """Store ``value`` under ``key`` and return the stored record.

        Setting ``None`` deletes the key and returns ``None``.

        Args:
            key: Non-empty key, segments separated by ":".
            value: JSON-serializable value or bytes.

        Returns:
            The record as stored, or None for a delete.
        """
        query.validate_key(key)
        if codec.is_delete(value):
            await self.delete(key)
            return None

        encoded = codec.encode(value)
        with log_context(session_id=self.session_id), _boundary("set", key=key):
            results = await self._batch(query.build_set(key, encoded))
            row = results[1].first()
            if row is None:
                raise KVError("set readback returned no row", context={"key": key})
            record = codec.decode_record(row)
            logger.debug("Set key", key=key)

        if self._notifier.enabled:
            await self._emit(ChangeEvent.set(record))
        return record

    async def get(self, key: str) -> Record | None:
        """Return the record for ``key``, or None if it does not exist."""
        query.validate_key(key)
        with log_context(session_id=self.session_id), _boundary("get", key=key):
            row = (await self._execute(query.build_get(key))).first()
            if row is None:
                return None
            return codec.decode_record(row)

    async def delete(self, key: str) -> None:
        """Delete ``key``. Deleting an absent key is a no-op."""
        query.validate_key(key)
        with log_context(session_id=self.session_id), _boundary("delete", key=key):
            prior, _, clock = await self._batch(query.build_delete(key))
            row = prior.first()
            logger.debug("Deleted key", key=key, existed=row is not None)

            if row is None or not self._notifier.enabled:
                return

            deleted_at = codec.parse_timestamp(clock.rows[0]["now"])
            record = Record(
                key=row["k"],
                value=None,
                created_at=codec.parse_timestamp(row["created_at"]),
                updated_at=deleted_at,
            )

        await self._emit(ChangeEvent.delete(record))

    async def delete_all(self, prefix: str = "") -> None:
        """Delete every key under ``prefix``. An empty prefix deletes ALL keys.

        This cannot be undone and asks for no confirmation.
        """
        if not isinstance(prefix, str):
            raise ValidationError(
                "Prefix must be a string", context={"field": "prefix", "value": prefix}
            )
        with log_context(session_id=self.session_id), _boundary("delete_all", prefix=prefix):
            result = await self._execute(query.build_delete_all(prefix))
            logger.info("Deleted keys", prefix=prefix, count=result.rows_affected)

    async def transaction(
        self,
        callback: Callable[[KVSession], Awaitable[T]],
        mode: TransactionMode = TransactionMode.WRITE,
    ) -> T:
        """Run ``callback`` inside a backing transaction.

        The callback receives a nested session. If it returns, the
        transaction commits and buffered events are replayed to the listener
        in order. If it raises, the transaction rolls back, no events fire,
        and a KVError wrapping the original exception is raised. Listener
        errors after commit propagate unchanged and do not undo the commit.

        Raises:
            KVError: On a nested call, a failed begin, or any callback or
                commit failure.
        """
        if isinstance(self._binding, BoundTransaction):
            raise KVError("nested transactions not supported")

        with log_context(session_id=self.session_id), _boundary("transaction"):
            handle = await self._binding.client.transaction(TransactionMode(mode))

        tx_id = generate_id("tx")
        tx = KVSession(BoundTransaction(handle), self._notifier, self.session_id)

        with log_context(session_id=self.session_id, tx_id=tx_id):
            try:
                try:
                    result = await callback(tx)
                    await handle.commit()
                except Exception as e:
                    tx._discard_events()
                    await self._rollback(handle)
                    logger.warning("Transaction rolled back", error=str(e))
                    raise KVError(
                        f"transaction rolled back: {e}",
                        context={"operation": "transaction"},
                    ) from e
            finally:
                await self._release(handle)

            logger.debug("Transaction committed", events=tx._pending_events())

        await tx._flush_events(self._notifier)
        return result

    async def _rollback(self, handle: TransactionHandle) -> None:
        try:
            await handle.rollback()
        except Exception:
            logger.exception("Rollback failed")

    async def _release(self, handle: TransactionHandle) -> None:
        try:
            await handle.close()
        except Exception:
            logger.exception("Failed to release transaction handle")

    def _pending_events(self) -> int:
        return len(self._buffer) if self._buffer is not None else 0

    def _discard_events(self) -> None:
        if self._buffer is not None:
            self._buffer.discard()

    async def _flush_events(self, notifier: EventNotifier) -> None:
        if self._buffer is not None:
            await self._buffer.flush(notifier)

    async def sync(self) -> None:
        """Sync the embedded replica, if the connection has one."""
        if isinstance(self._binding, BoundTransaction):
            return
        if not self._binding.capabilities.sync:
            return
        with log_context(session_id=self.session_id), _boundary("sync"):
            await self._binding.client.sync()

    async def close(self) -> None:
        """Close the backing connection or transaction handle."""
        with log_context(session_id=self.session_id), _boundary("close"):
            if isinstance(self._binding, BoundTransaction):
                await self._binding.handle.close()
            else:
                await self._binding.client.close()
                logger.info("Session closed")

    async def list(
        self,
        prefix: str = "",
        options: ListOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> ListResult:
        """List records whose key starts with ``prefix`` + ":".

        Args:
            prefix: Key prefix; "" lists every key.
            options: ListOptions or a mapping of option overrides.
            **overrides: Individual options, e.g. ``limit=10, reverse=True``.

        Returns:
            ListResult with the page of records and ``meta.total``, the number
            of matching records regardless of limit and offset.

        Raises:
            ValidationError: For an invalid order_by column or bad limit/offset.
        """
        opts = query.normalize_options(options, **overrides)
        list_query = query.build_list(prefix, opts)

        with log_context(session_id=self.session_id), _boundary("list", prefix=prefix):
            data, count = await self._batch(
                [list_query.data, list_query.count], TransactionMode.READ
            )
            records = [codec.decode_record(row) for row in data.rows]
            total = int(count.rows[0]["total"]) if count.rows else 0

        return ListResult(data=records, meta=ListMeta.create(opts, total))


async def open_kv(
    location: str,
    config: KVConfig | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> KVSession:
    """Open a root session on ``location``, creating the schema if needed.

    Args:
        location: Database path, ":memory:" or "file:" URI.
        config: KVConfig or a mapping of its options.
        **kwargs: Individual KVConfig options.

    Raises:
        ConfigurationError: Before connecting, if location or config is invalid.
        KVError: If connecting or creating the schema fails.
    """
    if not location:
        raise ConfigurationError("DB url missing")
    kv_config = KVConfig.create(dict(config) if isinstance(config, Mapping) else config, **kwargs)

    if kv_config.auth_token:
        logger.warning("Auth token is not used by the SQLite client", location=location)

    with _boundary("open", location=location):
        client = await SQLiteClient.connect(
            location,
            replica_path=kv_config.embedded_replica_path,
            sync_interval=kv_config.sync_interval,
        )
        try:
            await setup_database(client)
            if client.capabilities.sync:
                await client.sync()
        except Exception:
            await client.close()
            raise

    session = KVSession(
        BoundConnection(client, client.capabilities),
        EventNotifier(kv_config.event_listener),
    )
    logger.info("Session opened", session_id=session.session_id, location=location)
    return session
