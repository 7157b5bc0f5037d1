from __future__ import annotations

from datetime import timedelta
from typing import Iterable

from ..core.enums import AttendanceStatus
from ..records.model import MergedRecord
from .model import AttendanceSummary


def summarize(records: Iterable[MergedRecord]) -> AttendanceSummary:
    """Counts per status, attendance rate (%) and average worked time of a projected list."""
    counts = {status: 0 for status in AttendanceStatus}
    durations: list[timedelta] = []
    total = 0
    for merged in records:
        record = merged.record
        total += 1
        counts[record.status] += 1
        duration = record.derived.get("work_duration")
        if duration is not None:
            durations.append(duration)

    attended = counts[AttendanceStatus.PRESENT] + counts[AttendanceStatus.LATE] + counts[AttendanceStatus.HALF_DAY]
    rate = round(attended * 100.0 / total, 1) if total else 0.0
    average = sum(durations, timedelta()) / len(durations) if durations else None
    return AttendanceSummary(
        total=total,
        present=counts[AttendanceStatus.PRESENT],
        late=counts[AttendanceStatus.LATE],
        half_day=counts[AttendanceStatus.HALF_DAY],
        absent=counts[AttendanceStatus.ABSENT],
        not_marked=counts[AttendanceStatus.NOT_MARKED],
        attendance_rate=rate,
        average_work_duration=average,
    )
