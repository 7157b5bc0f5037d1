"""In-process change feed.

Data sources publish their own committed mutations here; each subscription is
an asyncio queue consumed as an async iterator. Delivery is at-least-once from
the consumer's point of view and unordered relative to query responses.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from ..core.enums import ChangeType
from .base import ChangeEvent

logger = logging.getLogger(__name__)

_CLOSE = object()


class QueueSubscription:
    def __init__(self, hub: "ChangeFeedHub", table: str, event_types: Iterable[ChangeType]):
        self._hub = hub
        self.table = table
        self.event_types = frozenset(event_types)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ChangeEvent) -> None:
        if self._closed or event.type not in self.event_types:
            return
        self._queue.put_nowait(event)

    def __aiter__(self) -> "QueueSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub._remove(self)
        self._queue.put_nowait(_CLOSE)


class ChangeFeedHub:
    def __init__(self):
        self._subscriptions: dict[str, tuple[QueueSubscription, ...]] = {}

    def subscribe(self, table: str, event_types: Iterable[ChangeType] = tuple(ChangeType)) -> QueueSubscription:
        subscription = QueueSubscription(self, table, event_types)
        self._subscriptions[table] = self._subscriptions.get(table, ()) + (subscription,)
        logger.debug("subscribed to %s (%d active)", table, len(self._subscriptions[table]))
        return subscription

    def publish(self, event: ChangeEvent) -> None:
        for subscription in self._subscriptions.get(event.table, ()):
            subscription.deliver(event)

    def publish_change(self, type: ChangeType, table: str, row: dict, old_row: Optional[dict] = None) -> None:
        self.publish(ChangeEvent(type=type, table=table, row=row, old_row=old_row))

    def subscriber_count(self, table: str) -> int:
        return len(self._subscriptions.get(table, ()))

    def _remove(self, subscription: QueueSubscription) -> None:
        current = self._subscriptions.get(subscription.table, ())
        self._subscriptions[subscription.table] = tuple(s for s in current if s is not subscription)
