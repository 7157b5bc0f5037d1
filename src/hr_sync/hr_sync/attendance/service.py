from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from ..common.datetime_utils import now_utc
from ..core.constants import ATTENDANCE_BUCKET
from ..core.enums import AttendanceStatus
from ..core.exceptions import ValidationError
from ..datasource.base import RemoteDataSource
from ..records.criteria import FilterCriteria
from ..records.model import Identity, MergedRecord
from ..records.normalizer import coerce_identity
from ..records.store import ReconcilingRecordStore
from .factory import AttendanceStrategyFactory
from .model import AttendanceSettings, AttendanceSummary
from .stats import summarize

logger = logging.getLogger(__name__)


class AttendanceService:
    """Check-in/check-out on top of the attendance view's record store."""

    def __init__(
        self,
        store: ReconcilingRecordStore,
        source: RemoteDataSource,
        *,
        settings: Optional[AttendanceSettings] = None,
        strategy_factory: Optional[AttendanceStrategyFactory] = None,
        now: Callable[[], datetime] = now_utc,
    ):
        self._store = store
        self._source = source
        self._settings = settings or AttendanceSettings()
        self._factory = strategy_factory or AttendanceStrategyFactory()
        self._now = now

    @property
    def store(self) -> ReconcilingRecordStore:
        return self._store

    @property
    def settings(self) -> AttendanceSettings:
        return self._settings

    def list(self, criteria: Optional[FilterCriteria] = None) -> list[MergedRecord]:
        return self._store.view(criteria)

    def stats(self, criteria: Optional[FilterCriteria] = None) -> AttendanceSummary:
        return summarize(self._store.view(criteria))

    def get_today_record(self, employee_id: Identity, *, now: Optional[datetime] = None) -> Optional[MergedRecord]:
        """Most recent record of the employee checked in on the same local day."""
        employee_id = self._employee(employee_id)
        today = (now or self._now()).astimezone(self._settings.tz).date()
        for merged in self._store.view():
            record = merged.record
            check_in = record.timestamps.get("checkIn")
            if record.subject_id != employee_id or check_in is None:
                continue
            if check_in.astimezone(self._settings.tz).date() == today:
                return merged
        return None

    async def check_in(
        self,
        employee_id: Identity,
        *,
        now: Optional[datetime] = None,
        selfie: Optional[bytes] = None,
    ) -> MergedRecord:
        employee_id = self._employee(employee_id)
        now = (now or self._now()).replace(microsecond=0)
        if self.get_today_record(employee_id, now=now) is not None:
            raise ValidationError("employee has already checked in today")

        strategy = self._factory.for_checkin(now=now, settings=self._settings)
        decision = strategy.decide_checkin(now=now, settings=self._settings)

        fields: dict[str, Any] = {"subject_id": employee_id, "checkIn": now, "status": decision.status}
        if selfie:
            fields["selfie_path"] = await self._upload_selfie(employee_id, selfie, now)

        identity = await self._store.create(fields)
        logger.info("employee %s checked in as %s (record %s)", employee_id, decision.status.value, identity)
        return self._store.get(identity)

    async def check_out(self, employee_id: Identity, *, now: Optional[datetime] = None) -> MergedRecord:
        now = (now or self._now()).replace(microsecond=0)
        merged = self.get_today_record(employee_id, now=now)
        if merged is None:
            raise ValidationError("employee has not checked in today")
        record = merged.record
        if record.timestamps.get("checkOut") is not None:
            raise ValidationError("employee has already checked out today")

        check_in = record.timestamps.get("checkIn")
        strategy = self._factory.for_checkout(
            check_in=check_in, now=now, settings=self._settings, current_status=record.status
        )
        decision = strategy.decide_checkout(
            check_in=check_in, now=now, settings=self._settings, current=record.status
        )

        await self._store.commit_edit(record.identity, {"checkOut": now, "status": decision.status})
        logger.info("employee %s checked out as %s", employee_id, decision.status.value)
        return self._store.get(record.identity)

    async def attach_selfie(self, identity: Identity, data: bytes) -> MergedRecord:
        merged = self._store.get(identity)
        if not data:
            raise ValidationError("selfie image is empty")
        path = await self._upload_selfie(merged.record.subject_id, data, self._now())
        await self._store.commit_edit(identity, {"selfie_path": path})
        return self._store.get(identity)

    async def edit(self, identity: Identity, fields: Mapping[str, Any]) -> MergedRecord:
        await self._store.commit_edit(identity, fields)
        return self._store.get(identity)

    async def mark_absent(self, employee_id: Identity) -> MergedRecord:
        """Record an absence; the record carries no check-in time."""
        employee_id = self._employee(employee_id)
        identity = await self._store.create({"subject_id": employee_id, "status": AttendanceStatus.ABSENT})
        return self._store.get(identity)

    async def _upload_selfie(self, employee_id: Identity, data: bytes, now: datetime) -> str:
        path = f"selfies/{employee_id}/{now:%Y%m%d%H%M%S}.jpg"
        return await self._source.upload(ATTENDANCE_BUCKET, path, data)

    @staticmethod
    def _employee(employee_id: Any) -> Identity:
        identity = coerce_identity(employee_id)
        if identity is None:
            raise ValidationError("employee id is required")
        return identity
