from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...common.datetime_utils import format_duration
from ...core.enums import AttendanceStatus
from ...core.exceptions import ValidationError
from ..model import AttendanceSettings
from .base import AttendanceStrategy, StatusDecision


class HalfDayStrategy(AttendanceStrategy):
    """Checked out before the half-day hours were worked."""

    def decide_checkin(self, *, now: datetime, settings: AttendanceSettings) -> StatusDecision:
        # The factory only hands this strategy out at checkout.
        raise ValidationError("half day can only be decided at checkout")

    def decide_checkout(
        self,
        *,
        check_in: Optional[datetime],
        now: datetime,
        settings: AttendanceSettings,
        current: AttendanceStatus,
    ) -> StatusDecision:
        worked = now - check_in if check_in is not None else None
        return StatusDecision(status=AttendanceStatus.HALF_DAY, note=f"worked {format_duration(worked)}")
