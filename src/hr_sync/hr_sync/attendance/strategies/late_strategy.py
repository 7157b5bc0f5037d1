from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceStatus
from ..model import AttendanceSettings
from .base import AttendanceStrategy, StatusDecision


class LateStrategy(AttendanceStrategy):
    """Check-in after work start plus the late threshold."""

    def decide_checkin(self, *, now: datetime, settings: AttendanceSettings) -> StatusDecision:
        local = now.astimezone(settings.tz)
        return StatusDecision(status=AttendanceStatus.LATE, note=f"checked in at {local:%H:%M}")

    def decide_checkout(
        self,
        *,
        check_in: Optional[datetime],
        now: datetime,
        settings: AttendanceSettings,
        current: AttendanceStatus,
    ) -> StatusDecision:
        return StatusDecision(status=current)
