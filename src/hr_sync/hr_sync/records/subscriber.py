from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from ..core.enums import ChangeType
from ..core.exceptions import DataSourceError
from ..datasource.base import ChangeEvent, Predicate, RemoteDataSource, Subscription
from .buffer import OptimisticMergeBuffer
from .normalizer import RecordNormalizer

logger = logging.getLogger(__name__)


class ChangeFeedSubscriber:
    """Feeds a table's change events through the normalizer into a merge buffer.

    `start()`/`stop()` are idempotent: at most one subscription and one consumer
    task exist per subscriber, however often the owning view is activated.
    """

    def __init__(
        self,
        source: RemoteDataSource,
        normalizer: RecordNormalizer,
        buffer: OptimisticMergeBuffer,
        *,
        scope: Sequence[Predicate] = (),
        event_types: Iterable[ChangeType] = tuple(ChangeType),
        refetch: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self._source = source
        self._normalizer = normalizer
        self._buffer = buffer
        self._scope = tuple(scope)
        self._event_types = tuple(event_types)
        self._refetch = refetch
        self._clock = clock
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def table(self) -> str:
        return self._normalizer.table

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Subscribe and start consuming; must run inside the event loop."""
        if self.active:
            return
        self._subscription = self._source.subscribe(self.table, self._event_types)
        self._task = asyncio.create_task(self._consume(self._subscription), name=f"change-feed:{self.table}")
        logger.debug("change feed for %s started", self.table)

    async def stop(self) -> None:
        subscription, task = self._subscription, self._task
        self._subscription = None
        self._task = None
        if subscription is not None:
            subscription.unsubscribe()
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.debug("change feed for %s stopped", self.table)

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                await self.handle(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                # One bad event must not end the feed for the whole view.
                logger.exception("change event on %s could not be applied", self.table)

    async def handle(self, event: ChangeEvent) -> None:
        if event.type == ChangeType.DELETE:
            identity = self._normalizer.identity_of(event.old_row or event.row)
            if identity is None:
                self._normalizer.diagnostics.report(self.table, self._normalizer.primary_key, event.old_row, "delete event without identity")
                return
            self._buffer.remove(identity)
            return

        row = event.row
        if not self._in_scope(row):
            identity = self._normalizer.identity_of(row)
            if identity is not None and identity in self._buffer.snapshot.records:
                # Moved out of this view's scope (e.g. reassigned tenant).
                self._buffer.discard(identity)
            return

        fetched_at = self._clock()
        if self._refetch:
            row = await self._fetch(row)
            if row is None:
                return

        record = self._normalizer.normalize(row)
        if record.identity is None:
            self._normalizer.diagnostics.report(self.table, self._normalizer.primary_key, row, "change event without identity")
            return
        self._buffer.apply_server_batch([record], fetched_at=fetched_at)

    def _in_scope(self, row: Mapping[str, Any]) -> bool:
        return all(p.matches(row) for p in self._scope)

    async def _fetch(self, row: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """Re-read the row with join expansion; falls back to the inline row."""
        identity = self._normalizer.identity_of(row)
        if identity is None:
            return row
        try:
            rows = await self._source.select(self.table, [Predicate(self._normalizer.primary_key, "eq", identity)])
        except DataSourceError as exc:
            logger.warning("re-fetch of %s %r failed, using event row: %s", self.table, identity, exc)
            return row
        if not rows:
            logger.debug("%s %r is gone before re-fetch", self.table, identity)
            return None
        return rows[0]
