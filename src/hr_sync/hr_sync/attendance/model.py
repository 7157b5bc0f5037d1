from __future__ import annotations

from dataclasses import dataclass
from datetime import time, timedelta, timezone, tzinfo
from typing import Optional

from ..common.datetime_utils import parse_clock_time
from ..core.constants import DEFAULT_HALF_DAY_HOURS, DEFAULT_LATE_THRESHOLD_MINUTES, DEFAULT_WORK_START_TIME
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class AttendanceSettings:
    """Working-day rules used to classify check-ins and check-outs."""

    work_start: time = parse_clock_time(DEFAULT_WORK_START_TIME)
    late_threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES
    half_day_hours: float = DEFAULT_HALF_DAY_HOURS
    tz: tzinfo = timezone.utc

    @classmethod
    def from_values(
        cls,
        *,
        work_start: str = DEFAULT_WORK_START_TIME,
        late_threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES,
        half_day_hours: float = DEFAULT_HALF_DAY_HOURS,
        tz: Optional[tzinfo] = None,
    ) -> "AttendanceSettings":
        try:
            start = parse_clock_time(work_start)
        except (AttributeError, ValueError):
            raise ValidationError(f"invalid work start time: {work_start!r}")
        if int(late_threshold_minutes) < 0:
            raise ValidationError("late threshold must not be negative")
        if float(half_day_hours) <= 0:
            raise ValidationError("half-day hours must be positive")
        return cls(
            work_start=start,
            late_threshold_minutes=int(late_threshold_minutes),
            half_day_hours=float(half_day_hours),
            tz=tz or timezone.utc,
        )

    @property
    def late_after(self) -> timedelta:
        return timedelta(minutes=self.late_threshold_minutes)

    @property
    def half_day(self) -> timedelta:
        return timedelta(hours=self.half_day_hours)


@dataclass(frozen=True)
class AttendanceSummary:
    total: int
    present: int
    late: int
    half_day: int
    absent: int
    not_marked: int
    attendance_rate: float
    average_work_duration: Optional[timedelta]

    def to_dict(self) -> dict:
        avg = self.average_work_duration
        return {
            "total": self.total,
            "present": self.present,
            "late": self.late,
            "half_day": self.half_day,
            "absent": self.absent,
            "not_marked": self.not_marked,
            "attendance_rate": self.attendance_rate,
            "average_work_seconds": int(avg.total_seconds()) if avg is not None else None,
        }
