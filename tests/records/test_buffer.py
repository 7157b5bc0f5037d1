from datetime import datetime, timezone

import pytest

from src.hr_sync.hr_sync.attendance.normalizer import AttendanceNormalizer
from src.hr_sync.hr_sync.core.enums import AttendanceStatus, EditState
from src.hr_sync.hr_sync.core.exceptions import IdentityMigrationError, RecordNotFoundError
from src.hr_sync.hr_sync.records.buffer import OptimisticMergeBuffer
from src.hr_sync.hr_sync.records.projector import project


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_buffer(clock=None):
    normalizer = AttendanceNormalizer()
    return normalizer, OptimisticMergeBuffer(normalizer, clock=clock or FakeClock())


def row(identity, status="Present", **extra):
    return {"attendanceid": identity, "employeeid": 5, "status": status, **extra}


def test_local_edit_visible_before_any_round_trip():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch(normalizer.normalize_batch([row(42)]), fetched_at=50)

    buffer.apply_local_edit(42, {"status": "Late"}, submitted_at=100)

    merged = buffer.get(42)
    assert merged.record.status == AttendanceStatus.LATE
    assert merged.pending is True


def test_newer_local_edit_wins_over_older_fetch():
    normalizer, buffer = make_buffer()
    buffer.apply_local_edit(42, {"status": "Late"}, submitted_at=100)
    buffer.apply_server_batch([normalizer.normalize(row(42, "Present"))], fetched_at=90)

    shown = project(buffer.merged())
    assert [m.record.status for m in shown] == [AttendanceStatus.LATE]
    assert shown[0].pending


def test_matching_server_record_confirms_edit():
    normalizer, buffer = make_buffer()
    buffer.apply_local_edit(42, {"status": "Late"}, submitted_at=100)
    buffer.apply_server_batch([normalizer.normalize(row(42, "Late"))], fetched_at=90)

    shown = project(buffer.merged())
    assert shown[0].record.status == AttendanceStatus.LATE
    assert not shown[0].pending
    assert buffer.pending_edit(42) is None


def test_newer_server_record_supersedes_older_edit():
    normalizer, buffer = make_buffer()
    buffer.apply_local_edit(42, {"status": "Late"}, submitted_at=100)
    buffer.apply_server_batch([normalizer.normalize(row(42, "Absent"))], fetched_at=150)

    assert buffer.get(42).record.status == AttendanceStatus.ABSENT
    assert buffer.pending_edit(42) is None


def test_failed_edit_is_kept_with_flag():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(7, "Present"))], fetched_at=50)
    buffer.apply_local_edit(7, {"status": "Absent"}, submitted_at=100)

    assert buffer.reconcile_failure(7, "permission denied")

    merged = buffer.get(7)
    assert merged.record.status == AttendanceStatus.ABSENT
    assert merged.failed
    assert merged.error == "permission denied"

    # A later refresh does not silently revert the user's input.
    buffer.apply_server_batch([normalizer.normalize(row(7, "Present"))], fetched_at=200)
    assert buffer.get(7).failed
    assert buffer.get(7).record.status == AttendanceStatus.ABSENT


def test_reconcile_failure_ignores_older_submission():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(7))], fetched_at=50)
    buffer.apply_local_edit(7, {"status": "Late"}, submitted_at=100)
    buffer.apply_local_edit(7, {"status": "Absent"}, submitted_at=120)

    assert not buffer.reconcile_failure(7, "timeout", submitted_at=100)
    assert buffer.pending_edit(7).state == EditState.PENDING


def test_confirm_mutation_with_different_fields_is_conflict():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(7))], fetched_at=50)
    edit = buffer.apply_local_edit(7, {"status": "Late"}, submitted_at=100)

    confirmed = buffer.confirm_mutation(7, normalizer.normalize(row(7, "Present")), submitted_at=edit.submitted_at)

    assert not confirmed
    merged = buffer.get(7)
    assert merged.conflict
    assert merged.record.status == AttendanceStatus.LATE


def test_confirm_mutation_clears_matching_edit():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(7))], fetched_at=50)
    edit = buffer.apply_local_edit(7, {"status": "Late"}, submitted_at=100)

    assert buffer.confirm_mutation(7, normalizer.normalize(row(7, "Late")), submitted_at=edit.submitted_at)
    assert not buffer.get(7).pending


def test_identity_migration_is_atomic():
    normalizer, buffer = make_buffer()
    edit = buffer.apply_local_create({"subject_id": 5, "status": "Present"}, submitted_at=100)
    temporary = edit.identity
    assert temporary < 0
    assert buffer.get(temporary).pending

    before = buffer.snapshot
    buffer.migrate_identity(temporary, normalizer.normalize(row(31, "Present")))
    after = buffer.snapshot

    assert temporary in before.records and 31 not in before.records
    assert temporary not in after.records and 31 in after.records
    assert [m.identity for m in project(buffer.merged())] == [31]
    assert not buffer.get(31).pending


def test_identity_migration_keeps_unconfirmed_fields_as_conflict():
    normalizer, buffer = make_buffer()
    edit = buffer.apply_local_create({"subject_id": 5, "status": "Late"}, submitted_at=100)

    confirmed = buffer.migrate_identity(edit.identity, normalizer.normalize(row(31, "Present")))

    assert not confirmed
    merged = buffer.get(31)
    assert merged.conflict
    assert merged.record.status == AttendanceStatus.LATE
    assert buffer.get(edit.identity) is None


def test_identity_migration_without_temporary_entry_raises():
    normalizer, buffer = make_buffer()

    with pytest.raises(IdentityMigrationError):
        buffer.migrate_identity(-99, normalizer.normalize(row(31)))


def test_delete_is_final_even_for_stale_updates():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(9))], fetched_at=50)
    buffer.apply_local_edit(9, {"status": "Late"}, submitted_at=60)

    buffer.remove(9)
    buffer.apply_server_batch([normalizer.normalize(row(9, "Late"))], fetched_at=70)
    buffer.confirm_mutation(9, normalizer.normalize(row(9, "Late")))

    assert project(buffer.merged()) == []
    assert buffer.pending_edit(9) is None
    with pytest.raises(RecordNotFoundError):
        buffer.apply_local_edit(9, {"status": "Absent"}, submitted_at=80)


def test_complete_batch_drops_rows_missing_from_store():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch(normalizer.normalize_batch([row(1), row(2)]), fetched_at=50)
    buffer.apply_server_batch(normalizer.normalize_batch([row(1)]), fetched_at=60, complete=True)

    assert [m.identity for m in buffer.merged()] == [1]


def test_complete_batch_keeps_rows_seen_after_the_fetch_started():
    clock = FakeClock(now=70)
    normalizer, buffer = make_buffer(clock)
    buffer.apply_server_batch(normalizer.normalize_batch([row(1)]), fetched_at=50)
    # Row 2 arrives through the change feed while the query is in flight.
    buffer.apply_server_batch([normalizer.normalize(row(2))], fetched_at=65)

    buffer.apply_server_batch(normalizer.normalize_batch([row(1)]), fetched_at=60, complete=True)

    assert sorted(m.identity for m in buffer.merged()) == [1, 2]


def test_snapshots_are_replaced_not_mutated():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(1))], fetched_at=50)
    old = buffer.snapshot
    old_records = dict(old.records)

    buffer.apply_local_edit(1, {"status": "Late"}, submitted_at=100)
    buffer.apply_server_batch([normalizer.normalize(row(2))], fetched_at=110)

    assert dict(old.records) == old_records
    assert dict(old.pending) == {}
    assert buffer.snapshot is not old
    with pytest.raises(TypeError):
        buffer.snapshot.records[3] = None


def test_discard_edit_of_unconfirmed_create_removes_draft():
    _, buffer = make_buffer()
    edit = buffer.apply_local_create({"status": "Present"}, submitted_at=100)

    assert buffer.discard_edit(edit.identity)
    assert buffer.merged() == []


def test_edit_without_cached_record_shows_once_server_copy_arrives():
    normalizer, buffer = make_buffer()
    buffer.apply_local_edit(42, {"status": "Late"}, submitted_at=100)
    assert buffer.merged() == []

    buffer.apply_server_batch([normalizer.normalize(row(42, "Present"))], fetched_at=90)

    assert buffer.get(42).record.status == AttendanceStatus.LATE


def test_checkin_time_edit_recomputes_duration():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch(
        [
            normalizer.normalize(
                row(1, checkintimestamp="2024-01-05T09:00:00Z", checkouttimestamp="2024-01-05T17:00:00Z")
            )
        ],
        fetched_at=50,
    )

    buffer.apply_local_edit(1, {"checkIn": datetime(2024, 1, 5, 13, 0, tzinfo=timezone.utc)}, submitted_at=100)

    assert buffer.get(1).record.derived["work_hours"] == "4h 00m"


def test_conflict_survives_newer_server_record():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(7))], fetched_at=50)
    edit = buffer.apply_local_edit(7, {"status": "Late"}, submitted_at=100, in_flight=True)
    buffer.confirm_mutation(7, normalizer.normalize(row(7, "Present")), submitted_at=edit.submitted_at)

    # The change feed echo of the same write is stamped later than the edit.
    buffer.apply_server_batch([normalizer.normalize(row(7, "Present"))], fetched_at=150)

    merged = buffer.get(7)
    assert merged.conflict
    assert merged.record.status == AttendanceStatus.LATE


def test_in_flight_edit_is_kept_over_newer_server_record():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(7))], fetched_at=50)
    buffer.apply_local_edit(7, {"status": "Absent"}, submitted_at=100, in_flight=True)

    buffer.apply_server_batch([normalizer.normalize(row(7, "Late"))], fetched_at=150)

    assert buffer.get(7).record.status == AttendanceStatus.ABSENT
    assert buffer.pending_edit(7).in_flight

    buffer.settle(7, submitted_at=100)
    buffer.apply_server_batch([normalizer.normalize(row(7, "Late"))], fetched_at=200)

    assert buffer.get(7).record.status == AttendanceStatus.LATE
    assert buffer.pending_edit(7) is None


def test_settle_ignores_other_submissions():
    normalizer, buffer = make_buffer()
    buffer.apply_server_batch([normalizer.normalize(row(7))], fetched_at=50)
    buffer.apply_local_edit(7, {"status": "Absent"}, submitted_at=120, in_flight=True)

    buffer.settle(7, submitted_at=100)

    assert buffer.pending_edit(7).in_flight


def test_identity_migration_drops_stale_edit_under_final_id():
    normalizer, buffer = make_buffer()
    # An edit left behind for an id the store had not assigned yet.
    buffer.apply_local_edit(31, {"status": "Absent"}, submitted_at=90)
    edit = buffer.apply_local_create({"subject_id": 5, "status": "Present"}, submitted_at=100)

    confirmed = buffer.migrate_identity(edit.identity, normalizer.normalize(row(31, "Present")))

    assert confirmed
    merged = buffer.get(31)
    assert merged.record.status == AttendanceStatus.PRESENT
    assert not merged.pending and not merged.failed
    assert buffer.pending_edit(31) is None
