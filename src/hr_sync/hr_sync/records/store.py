from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar

from ..common.validators import require_fields
from ..core.exceptions import DataSourceError, IdentityMigrationError, RecordNotFoundError, ValidationError
from ..datasource.base import OrderBy, Predicate, RemoteDataSource
from .buffer import OptimisticMergeBuffer
from .criteria import FilterCriteria
from .model import Identity, MergedRecord, PendingEdit
from .normalizer import RecordNormalizer
from .projector import project
from .subscriber import ChangeFeedSubscriber

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "no response from the server"
    return str(exc) or exc.__class__.__name__


class ReconcilingRecordStore:
    """One view's records: query, change feed, optimistic edits and projection.

    A generation counter guards every awaited call: responses that arrive after
    the view was deactivated (or re-activated) are not applied.
    """

    def __init__(
        self,
        source: RemoteDataSource,
        normalizer: RecordNormalizer,
        *,
        scope: Sequence[Predicate] = (),
        order_by: Optional[OrderBy] = None,
        refetch_on_change: bool = False,
        mutation_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._source = source
        self._normalizer = normalizer
        self._scope = tuple(scope)
        self._order_by = order_by
        self._timeout = mutation_timeout
        self._clock = clock
        self._generation = 0
        self._active = False
        self.fetch_error: Optional[str] = None

        self.buffer = OptimisticMergeBuffer(normalizer, clock=clock)
        self.subscriber = ChangeFeedSubscriber(
            source,
            normalizer,
            self.buffer,
            scope=self._scope,
            refetch=refetch_on_change,
            clock=clock,
        )

    @property
    def table(self) -> str:
        return self._normalizer.table

    @property
    def normalizer(self) -> RecordNormalizer:
        return self._normalizer

    @property
    def active(self) -> bool:
        return self._active

    @property
    def mutation_timeout(self) -> Optional[float]:
        return self._timeout

    @property
    def generation(self) -> int:
        return self._generation

    # ---- lifecycle ---------------------------------------------------------

    async def activate(self, *, refresh: bool = True) -> None:
        if self._active:
            return
        self._active = True
        self._generation += 1
        self.subscriber.start()
        if refresh:
            await self.refresh()

    async def deactivate(self) -> None:
        if not self._active:
            return
        self._active = False
        self._generation += 1
        await self.subscriber.stop()

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self._timeout:
            return await asyncio.wait_for(awaitable, self._timeout)
        return await awaitable

    # ---- queries -----------------------------------------------------------

    async def refresh(self) -> bool:
        """Re-query the whole scope; a failure is kept in `fetch_error`, edits stay."""
        generation = self._generation
        fetched_at = self._clock()
        try:
            rows = await self._call(self._source.select(self.table, self._scope, self._order_by))
        except (DataSourceError, asyncio.TimeoutError) as exc:
            logger.warning("refresh of %s failed: %s", self.table, _describe(exc))
            if generation == self._generation:
                self.fetch_error = _describe(exc)
            return False
        if generation != self._generation:
            logger.debug("discarding stale %s query response", self.table)
            return False

        self.buffer.apply_server_batch(self._normalizer.normalize_batch(rows), fetched_at=fetched_at, complete=True)
        self.fetch_error = None
        return True

    async def refresh_identity(self, identity: Identity) -> bool:
        generation = self._generation
        fetched_at = self._clock()
        predicates = self._scope + (Predicate(self._normalizer.primary_key, "eq", identity),)
        try:
            rows = await self._call(self._source.select(self.table, predicates))
        except (DataSourceError, asyncio.TimeoutError) as exc:
            logger.warning("re-fetch of %s %r failed: %s", self.table, identity, _describe(exc))
            return False
        if generation != self._generation:
            return False
        records = self._normalizer.normalize_batch(rows)
        if not records:
            self.buffer.discard(identity)
            return True
        self.buffer.apply_server_batch(records, fetched_at=fetched_at)
        return True

    def dismiss_fetch_error(self) -> None:
        self.fetch_error = None

    # ---- view --------------------------------------------------------------

    def view(self, criteria: Optional[FilterCriteria] = None) -> list[MergedRecord]:
        return project(self.buffer.merged(), criteria or self._normalizer.criteria())

    def get(self, identity: Identity) -> MergedRecord:
        merged = self.buffer.get(identity)
        if merged is None:
            raise RecordNotFoundError(f"{self.table} record {identity!r} not found")
        return merged

    # ---- local edits -------------------------------------------------------

    def apply_local_edit(self, identity: Identity, fields: Mapping[str, Any]) -> PendingEdit:
        return self.buffer.apply_local_edit(identity, fields, self._clock())

    def reconcile_failure(self, identity: Identity, error: Optional[str] = None) -> bool:
        return self.buffer.reconcile_failure(identity, error)

    def discard_edit(self, identity: Identity) -> bool:
        return self.buffer.discard_edit(identity)

    async def commit_edit(self, identity: Identity, fields: Mapping[str, Any]) -> bool:
        """Optimistically apply `fields` and send them; True once the store confirmed them."""
        require_fields(fields)
        if identity not in self.buffer.snapshot.records:
            raise RecordNotFoundError(f"{self.table} record {identity!r} not found")
        previous = self.buffer.pending_edit(identity)
        if previous is not None and previous.is_new and not previous.failed:
            raise ValidationError(f"{self.table} record {identity!r} is still being created")

        edit = self.buffer.apply_local_edit(identity, fields, self._clock(), in_flight=True)
        if edit.is_new:
            edit = self.buffer.mark_resubmitted(identity, edit.submitted_at)
            return await self._submit_create(edit) != identity
        return await self._submit_update(edit)

    async def create(self, fields: Mapping[str, Any]) -> Identity:
        """Insert a record; returns its final identity, or the temporary one if the insert failed."""
        edit = self.buffer.apply_local_create(fields, self._clock())
        return await self._submit_create(edit)

    async def retry(self, identity: Identity) -> bool:
        """Re-submit a failed or conflicting edit."""
        edit = self.buffer.pending_edit(identity)
        if edit is None:
            raise RecordNotFoundError(f"no outstanding edit for {self.table} record {identity!r}")
        if not (edit.failed or edit.conflict):
            return False
        edit = self.buffer.mark_resubmitted(identity, self._clock())
        if edit.is_new:
            return await self._submit_create(edit) != identity
        return await self._submit_update(edit)

    async def delete(self, identity: Identity) -> bool:
        edit = self.buffer.pending_edit(identity)
        if edit is not None and edit.is_new:
            return self.buffer.discard_edit(identity)

        generation = self._generation
        try:
            await self._call(self._source.delete(self.table, identity))
        except (DataSourceError, asyncio.TimeoutError) as exc:
            logger.warning("delete of %s %r failed: %s", self.table, identity, _describe(exc))
            return False
        if generation == self._generation:
            self.buffer.remove(identity)
        return True

    async def _submit_update(self, edit: PendingEdit) -> bool:
        generation = self._generation
        try:
            row = await self._call(
                self._source.update(self.table, edit.identity, self._normalizer.to_wire(edit.fields))
            )
        except (DataSourceError, asyncio.TimeoutError) as exc:
            logger.warning("update of %s %r failed: %s", self.table, edit.identity, _describe(exc))
            if generation == self._generation:
                self.buffer.reconcile_failure(edit.identity, _describe(exc), submitted_at=edit.submitted_at)
            else:
                self.buffer.settle(edit.identity, edit.submitted_at)
            return False
        if generation != self._generation:
            logger.debug("discarding stale update response for %s %r", self.table, edit.identity)
            self.buffer.settle(edit.identity, edit.submitted_at)
            return False

        record = self._normalizer.normalize(row)
        return self.buffer.confirm_mutation(edit.identity, record, submitted_at=edit.submitted_at)

    async def _submit_create(self, edit: PendingEdit) -> Identity:
        generation = self._generation
        payload = {**self._scope_values(), **self._normalizer.to_wire(edit.fields)}
        try:
            row = await self._call(self._source.insert(self.table, payload))
        except (DataSourceError, asyncio.TimeoutError) as exc:
            logger.warning("insert into %s failed: %s", self.table, _describe(exc))
            if generation == self._generation:
                self.buffer.reconcile_failure(edit.identity, _describe(exc), submitted_at=edit.submitted_at)
            return edit.identity

        record = self._normalizer.normalize(row)
        if generation != self._generation:
            # The row exists now; the next refresh brings it in under its real id.
            self.buffer.discard_edit(edit.identity)
            return record.identity if record.identity is not None else edit.identity

        try:
            self.buffer.migrate_identity(edit.identity, record)
        except IdentityMigrationError as exc:
            logger.warning("%s; re-fetching", exc)
            if record.identity is None:
                return edit.identity
            self.buffer.discard(record.identity)
            await self.refresh_identity(record.identity)
        return record.identity

    def _scope_values(self) -> dict[str, Any]:
        return {p.column: p.value for p in self._scope if p.op == "eq"}
