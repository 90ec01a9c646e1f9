"""
Change event delivery.

Root sessions hand events straight to the notifier. Sessions bound to a
transaction append them to an EventBuffer, which is flushed to the notifier
after commit and discarded on rollback.
"""

from __future__ import annotations

import inspect
from typing import Iterator

from sqlkv.logging import get_logger
from sqlkv.types import ChangeEvent, EventListener

logger = get_logger(__name__)


class EventNotifier:
    """Delivers change events to an optional listener.

    The listener may be a plain function or a coroutine function. Errors it
    raises propagate to whoever triggered the notification.
    """

    def __init__(self, listener: EventListener | None = None) -> None:
        self._listener = listener

    @property
    def enabled(self) -> bool:
        """True when a listener is configured."""
        return self._listener is not None

    async def notify(self, event: ChangeEvent) -> None:
        if self._listener is None:
            return

        logger.debug("Dispatching event", kind=event.kind.value, key=event.record.key)
        result = self._listener(event)
        if inspect.isawaitable(result):
            await result


class EventBuffer:
    """Ordered queue of events emitted inside a transaction."""

    def __init__(self) -> None:
        self._events: list[ChangeEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ChangeEvent]:
        return iter(self._events)

    def append(self, event: ChangeEvent) -> None:
        self._events.append(event)

    def discard(self) -> None:
        """Drop all pending events."""
        if self._events:
            logger.debug("Discarding buffered events", count=len(self._events))
        self._events.clear()

    async def flush(self, notifier: EventNotifier) -> None:
        """Replay pending events to ``notifier`` in emission order.

        Events are removed from the buffer before delivery, so a listener
        failure part way through never causes a redelivery.
        """
        pending, self._events = self._events, []
        for event in pending:
            await notifier.notify(event)
