from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import parse_iso_timestamp
from ..core.constants import EMPLOYEE_TABLE, LEAVE_TYPES
from ..core.enums import LeaveStatus
from ..core.exceptions import DomainError, ValidationError
from ..datasource.base import Predicate, RemoteDataSource
from ..records.criteria import FilterCriteria
from ..records.model import Identity, MergedRecord
from ..records.normalizer import coerce_identity, match_enum, person_display
from ..records.store import ReconcilingRecordStore

logger = logging.getLogger(__name__)

# Statuses that hold the requested days.
_BOOKED = (LeaveStatus.PENDING, LeaveStatus.APPROVED)
_DECISIONS = (LeaveStatus.APPROVED, LeaveStatus.REJECTED)


class LeaveService:
    """Leave applications and their approval on top of the leave view's record store."""

    def __init__(self, store: ReconcilingRecordStore, source: RemoteDataSource):
        self._store = store
        self._source = source

    @property
    def store(self) -> ReconcilingRecordStore:
        return self._store

    def list(self, criteria: Optional[FilterCriteria] = None) -> list[MergedRecord]:
        return self._store.view(criteria)

    def for_employee(self, employee_id: Any, criteria: Optional[FilterCriteria] = None) -> list[MergedRecord]:
        employee_id = self._employee(employee_id)
        return [m for m in self._store.view(criteria) if m.record.subject_id == employee_id]

    async def apply(
        self,
        employee_id: Any,
        *,
        leave_type: Any,
        start: Any,
        end: Any,
        reason: Optional[str] = None,
    ) -> MergedRecord:
        """Submit a Pending application; overlapping booked leave of the same employee is refused."""
        employee_id = self._employee(employee_id)
        leave_type = self._leave_type(leave_type)
        start_at = self._date(start, "start")
        end_at = self._date(end, "end")
        if end_at < start_at:
            raise ValidationError("leave cannot end before it starts")

        for merged in self.for_employee(employee_id):
            if _overlaps(merged, start_at, end_at):
                raise ValidationError(f"overlaps leave {merged.identity}")

        fields = {
            "subject_id": employee_id,
            "leave_type": leave_type,
            "start": start_at,
            "end": end_at,
            "status": LeaveStatus.PENDING,
            "employee_name": await self._employee_name(employee_id),
        }
        if reason:
            fields["reason"] = reason
        identity = await self._store.create(fields)
        logger.info("employee %s applied for %s (record %s)", employee_id, leave_type, identity)
        return self._store.get(identity)

    async def set_status(self, identity: Identity, status: Any) -> MergedRecord:
        decision = match_enum(LeaveStatus, status)
        if decision not in _DECISIONS:
            raise ValidationError(f"invalid leave decision: {status!r}")
        merged = self._store.get(identity)
        if merged.record.status != LeaveStatus.PENDING:
            raise DomainError(f"leave {identity} is already {merged.record.status.value.lower()}")

        await self._store.commit_edit(identity, {"status": decision})
        logger.info("leave %s %s", identity, decision.value.lower())
        return self._store.get(identity)

    async def cancel(self, identity: Identity, employee_id: Any) -> bool:
        """Withdraw an employee's own application while it is still Pending."""
        employee_id = self._employee(employee_id)
        merged = self._store.get(identity)
        if merged.record.subject_id != employee_id:
            raise ValidationError(f"leave {identity} does not belong to employee {employee_id}")
        if merged.record.status != LeaveStatus.PENDING:
            raise DomainError(f"leave {identity} is already {merged.record.status.value.lower()}")
        return await self._store.delete(identity)

    def stats(self, criteria: Optional[FilterCriteria] = None) -> dict:
        """Counts per status and approved days per leave type."""
        counts = {status.value: 0 for status in LeaveStatus if status != LeaveStatus.UNKNOWN}
        days_by_type: dict[str, int] = {}
        total = 0
        for merged in self._store.view(criteria):
            record = merged.record
            total += 1
            if record.status.value in counts:
                counts[record.status.value] += 1
            days = record.derived.get("days")
            if record.status == LeaveStatus.APPROVED and days:
                key = record.fields.get("leave_type") or "Other"
                days_by_type[key] = days_by_type.get(key, 0) + days
        return {
            "total": total,
            "by_status": counts,
            "approved_days": sum(days_by_type.values()),
            "approved_days_by_type": days_by_type,
        }

    async def _employee_name(self, employee_id: Identity) -> str:
        rows = await self._source.select(EMPLOYEE_TABLE, [Predicate("employeeid", "eq", employee_id)])
        if not rows:
            return "Employee"
        return person_display(rows[0])["display_name"] or "Employee"

    @staticmethod
    def _employee(employee_id: Any) -> Identity:
        identity = coerce_identity(employee_id)
        if identity is None:
            raise ValidationError("employee id is required")
        return identity

    @staticmethod
    def _leave_type(value: Any) -> str:
        text = str(value or "").strip().lower()
        for leave_type in LEAVE_TYPES:
            if leave_type.lower() == text:
                return leave_type
        raise ValidationError(f"invalid leave type: {value!r}")

    @staticmethod
    def _date(value: Any, name: str) -> datetime:
        parsed = parse_iso_timestamp(value)
        if parsed is None:
            raise ValidationError(f"invalid {name} date: {value!r}")
        return parsed


def _overlaps(merged: MergedRecord, start: datetime, end: datetime) -> bool:
    record = merged.record
    if record.status not in _BOOKED:
        return False
    other_start = record.timestamps.get("start")
    other_end = record.timestamps.get("end") or other_start
    if other_start is None:
        return False
    return other_start.date() <= end.date() and start.date() <= other_end.date()
