from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

from ..core.enums import EditState
from ..core.exceptions import IdentityMigrationError, RecordNotFoundError
from .model import CanonicalRecord, Identity, MergedRecord, PendingEdit, frozen_mapping
from .normalizer import RecordNormalizer

logger = logging.getLogger(__name__)

_CONFLICT_MESSAGE = "saved values differ from submitted values"


def _empty() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class BufferSnapshot:
    """Immutable state of a merge buffer; replaced wholesale on every change.

    `seen` holds, per cached identity, the time its server copy was last applied.
    """

    records: Mapping[Identity, CanonicalRecord] = field(default_factory=_empty)
    pending: Mapping[Identity, PendingEdit] = field(default_factory=_empty)
    seen: Mapping[Identity, float] = field(default_factory=_empty)
    deleted: frozenset = frozenset()


class OptimisticMergeBuffer:
    """Server records merged with outstanding local edits, keyed by identity.

    Every operation builds a new BufferSnapshot and swaps it in with a single
    assignment, so a reader holding `snapshot` never sees a half-applied change.
    """

    def __init__(self, normalizer: RecordNormalizer, *, clock: Callable[[], float] = time.time):
        self._normalizer = normalizer
        self._clock = clock
        self._snapshot = BufferSnapshot()
        self._next_temporary_id = -1

    @property
    def snapshot(self) -> BufferSnapshot:
        return self._snapshot

    def _commit(
        self,
        *,
        records: Optional[dict] = None,
        pending: Optional[dict] = None,
        seen: Optional[dict] = None,
        deleted: Optional[set] = None,
    ) -> None:
        old = self._snapshot
        self._snapshot = BufferSnapshot(
            records=MappingProxyType(records) if records is not None else old.records,
            pending=MappingProxyType(pending) if pending is not None else old.pending,
            seen=MappingProxyType(seen) if seen is not None else old.seen,
            deleted=frozenset(deleted) if deleted is not None else old.deleted,
        )

    # ---- reads -------------------------------------------------------------

    def merged(self) -> list[MergedRecord]:
        """Records as the user should see them: server copy plus any local overrides."""
        snap = self._snapshot
        out = []
        for identity, base in snap.records.items():
            edit = snap.pending.get(identity)
            if edit is None:
                out.append(MergedRecord(base))
                continue
            out.append(
                MergedRecord(
                    self._normalizer.apply_overrides(base, edit.fields),
                    pending=True,
                    failed=edit.failed,
                    conflict=edit.conflict,
                    error=edit.error,
                )
            )
        return out

    def get(self, identity: Identity) -> Optional[MergedRecord]:
        snap = self._snapshot
        base = snap.records.get(identity)
        if base is None:
            return None
        edit = snap.pending.get(identity)
        if edit is None:
            return MergedRecord(base)
        return MergedRecord(
            self._normalizer.apply_overrides(base, edit.fields),
            pending=True,
            failed=edit.failed,
            conflict=edit.conflict,
            error=edit.error,
        )

    def pending_edit(self, identity: Identity) -> Optional[PendingEdit]:
        return self._snapshot.pending.get(identity)

    def is_deleted(self, identity: Identity) -> bool:
        return identity in self._snapshot.deleted

    # ---- server side -------------------------------------------------------

    def apply_server_batch(
        self,
        records: Iterable[CanonicalRecord],
        *,
        fetched_at: float,
        complete: bool = False,
    ) -> None:
        """Merge normalized server records fetched at `fetched_at`.

        Per identity: matching pending fields confirm the edit. A newer edit, a
        failed or conflicting edit, and an edit whose mutation is still in flight
        stay layered on top; any other older edit is superseded. Without an edit
        the server copy replaces the cache. Deleted identities are ignored.

        With `complete=True` the batch is the whole scope of the view, so cached
        records it lacks (and not refreshed since `fetched_at`) are dropped.
        """
        snap = self._snapshot
        cached = dict(snap.records)
        pending = dict(snap.pending)
        seen = dict(snap.seen)
        arrived = set()

        for record in records:
            identity = record.identity
            if identity is None or identity in snap.deleted:
                continue
            arrived.add(identity)
            cached[identity] = record
            seen[identity] = max(fetched_at, seen.get(identity, fetched_at))

            edit = pending.get(identity)
            if edit is None or edit.is_new:
                continue
            if self._normalizer.matches(record, edit.fields):
                del pending[identity]
            elif edit.submitted_at > fetched_at or edit.failed or edit.conflict or edit.in_flight:
                continue
            else:
                logger.debug("server record %r supersedes local edit", identity)
                del pending[identity]

        if complete:
            for identity in list(cached):
                edit = pending.get(identity)
                if identity in arrived or (edit is not None and edit.is_new):
                    continue
                if seen.get(identity, float("-inf")) >= fetched_at:
                    continue
                logger.debug("%r no longer returned by the store, dropping", identity)
                cached.pop(identity, None)
                pending.pop(identity, None)
                seen.pop(identity, None)

        self._commit(records=cached, pending=pending, seen=seen)

    def confirm_mutation(
        self,
        identity: Identity,
        record: CanonicalRecord,
        *,
        submitted_at: Optional[float] = None,
    ) -> bool:
        """Apply a mutation response; returns True when the edit was confirmed.

        A response whose fields differ from what was submitted keeps the edit as a
        conflict instead of clearing it. When `submitted_at` belongs to an older
        submission than the outstanding edit, only the server copy is updated.
        """
        snap = self._snapshot
        if identity in snap.deleted:
            return False
        cached = dict(snap.records)
        pending = dict(snap.pending)
        seen = dict(snap.seen)
        cached[identity] = record.with_identity(identity)
        seen[identity] = self._clock()

        edit = pending.get(identity)
        if edit is not None and submitted_at is not None and edit.submitted_at > submitted_at:
            self._commit(records=cached, seen=seen)
            return False

        confirmed = edit is None or self._normalizer.matches(record, edit.fields)
        if edit is not None:
            if confirmed:
                del pending[identity]
            else:
                logger.warning("mutation response for %r differs from submitted fields", identity)
                pending[identity] = replace(edit, state=EditState.CONFLICT, error=_CONFLICT_MESSAGE, in_flight=False)

        self._commit(records=cached, pending=pending, seen=seen)
        return confirmed

    def remove(self, identity: Identity) -> None:
        """Delete finality: drop the record and its edit, and ignore it from now on."""
        snap = self._snapshot
        self._commit(
            records={k: v for k, v in snap.records.items() if k != identity},
            pending={k: v for k, v in snap.pending.items() if k != identity},
            seen={k: v for k, v in snap.seen.items() if k != identity},
            deleted=set(snap.deleted) | {identity},
        )

    def discard(self, identity: Identity) -> None:
        """Drop an identity from the view without a tombstone so a re-fetch can restore it."""
        snap = self._snapshot
        self._commit(
            records={k: v for k, v in snap.records.items() if k != identity},
            pending={k: v for k, v in snap.pending.items() if k != identity},
            seen={k: v for k, v in snap.seen.items() if k != identity},
        )

    # ---- local side --------------------------------------------------------

    def apply_local_edit(
        self,
        identity: Identity,
        fields: Mapping[str, Any],
        submitted_at: float,
        *,
        in_flight: bool = False,
    ) -> PendingEdit:
        """Create or replace the pending edit; visible in `merged()` immediately."""
        snap = self._snapshot
        if identity in snap.deleted:
            raise RecordNotFoundError(f"record {identity!r} has been deleted")

        coerced = self._normalizer.coerce_fields(fields)
        previous = snap.pending.get(identity)
        if previous is not None:
            # Fields not touched by this edit keep their earlier unconfirmed value.
            coerced = {**previous.fields, **coerced}
        edit = PendingEdit(
            identity=identity,
            fields=frozen_mapping(coerced),
            submitted_at=submitted_at,
            state=previous.state if previous is not None and previous.is_new else EditState.PENDING,
            error=previous.error if previous is not None and previous.is_new else None,
            is_new=previous.is_new if previous is not None else False,
            in_flight=in_flight,
        )
        pending = dict(snap.pending)
        pending[identity] = edit
        self._commit(pending=pending)
        return edit

    def apply_local_create(self, fields: Mapping[str, Any], submitted_at: float) -> PendingEdit:
        """Show a not-yet-acknowledged record under a fresh negative temporary id."""
        coerced = self._normalizer.coerce_fields(fields)
        identity = self._next_temporary_id
        self._next_temporary_id -= 1

        snap = self._snapshot
        cached = dict(snap.records)
        pending = dict(snap.pending)
        cached[identity] = self._normalizer.draft(identity, {})
        edit = PendingEdit(
            identity=identity,
            fields=frozen_mapping(coerced),
            submitted_at=submitted_at,
            is_new=True,
            in_flight=True,
        )
        pending[identity] = edit
        self._commit(records=cached, pending=pending)
        return edit

    def reconcile_failure(
        self,
        identity: Identity,
        error: Optional[str] = None,
        *,
        submitted_at: Optional[float] = None,
    ) -> bool:
        """Keep the edit after a failed or unanswered mutation and flag it for the UI."""
        snap = self._snapshot
        edit = snap.pending.get(identity)
        if edit is None:
            logger.info("mutation for %r failed but no local edit is outstanding", identity)
            return False
        if submitted_at is not None and edit.submitted_at > submitted_at:
            # A newer submission is in flight; its own outcome decides.
            return False
        pending = dict(snap.pending)
        pending[identity] = replace(edit, state=EditState.FAILED, error=error or "save failed", in_flight=False)
        self._commit(pending=pending)
        return True

    def mark_resubmitted(self, identity: Identity, submitted_at: float) -> Optional[PendingEdit]:
        snap = self._snapshot
        edit = snap.pending.get(identity)
        if edit is None:
            return None
        edit = replace(edit, state=EditState.PENDING, error=None, submitted_at=submitted_at, in_flight=True)
        pending = dict(snap.pending)
        pending[identity] = edit
        self._commit(pending=pending)
        return edit

    def settle(self, identity: Identity, submitted_at: float) -> None:
        """Clear the in-flight flag of a submission whose response will never be applied."""
        snap = self._snapshot
        edit = snap.pending.get(identity)
        if edit is None or not edit.in_flight or edit.submitted_at != submitted_at:
            return
        pending = dict(snap.pending)
        pending[identity] = replace(edit, in_flight=False)
        self._commit(pending=pending)

    def discard_edit(self, identity: Identity) -> bool:
        """Drop an outstanding edit; an unconfirmed create disappears entirely."""
        snap = self._snapshot
        edit = snap.pending.get(identity)
        if edit is None:
            return False
        pending = {k: v for k, v in snap.pending.items() if k != identity}
        if edit.is_new:
            self._commit(records={k: v for k, v in snap.records.items() if k != identity}, pending=pending)
        else:
            self._commit(pending=pending)
        return True

    def migrate_identity(self, temporary_id: Identity, record: CanonicalRecord) -> bool:
        """Swap a temporary id for the store-assigned one in a single state change.

        Returns True when the confirmed record matches the submitted fields (the
        edit is cleared); otherwise the edit moves to the final id as a conflict.
        """
        final_id = record.identity
        snap = self._snapshot
        edit = snap.pending.get(temporary_id)
        if final_id is None or edit is None or not edit.is_new or temporary_id not in snap.records:
            raise IdentityMigrationError(temporary_id, final_id)

        cached = {k: v for k, v in snap.records.items() if k != temporary_id}
        pending = {k: v for k, v in snap.pending.items() if k != temporary_id}
        seen = dict(snap.seen)
        cached[final_id] = record
        seen[final_id] = self._clock()
        if pending.pop(final_id, None) is not None:
            logger.warning("dropping stale edit held under new identity %r", final_id)

        confirmed = self._normalizer.matches(record, edit.fields)
        if not confirmed:
            pending[final_id] = replace(
                edit,
                identity=final_id,
                is_new=False,
                state=EditState.CONFLICT,
                error=_CONFLICT_MESSAGE,
                in_flight=False,
            )
        self._commit(records=cached, pending=pending, seen=seen)
        return confirmed
