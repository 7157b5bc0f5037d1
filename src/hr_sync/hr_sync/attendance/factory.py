from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AttendanceStatus
from .model import AttendanceSettings
from .strategies.base import AttendanceStrategy
from .strategies.half_day_strategy import HalfDayStrategy
from .strategies.late_strategy import LateStrategy
from .strategies.present_strategy import PresentStrategy


@dataclass
class AttendanceStrategyFactory:
    """Factory Pattern: choose appropriate strategy based on rules."""

    def for_checkin(self, *, now: datetime, settings: AttendanceSettings) -> AttendanceStrategy:
        local = now.astimezone(settings.tz)
        work_start = datetime.combine(local.date(), settings.work_start, tzinfo=settings.tz)
        if local <= work_start + settings.late_after:
            return PresentStrategy()
        return LateStrategy()

    def for_checkout(
        self,
        *,
        check_in: Optional[datetime],
        now: datetime,
        settings: AttendanceSettings,
        current_status: AttendanceStatus,
    ) -> AttendanceStrategy:
        if check_in is not None and check_in < now and now - check_in < settings.half_day:
            return HalfDayStrategy()
        if current_status == AttendanceStatus.LATE:
            return LateStrategy()
        return PresentStrategy()
