from __future__ import annotations

from datetime import datetime
from typing import Iterable

from ..core.enums import TaskPriority, TaskStatus
from ..records.model import MergedRecord
from .normalizer import is_overdue


def summarize(records: Iterable[MergedRecord], *, now: datetime) -> dict:
    by_status = {status.value: 0 for status in TaskStatus}
    by_priority = {priority.value: 0 for priority in TaskPriority}
    overdue = 0
    total = 0
    for merged in records:
        record = merged.record
        total += 1
        by_status[record.status.value] += 1
        priority = record.fields.get("priority") or TaskPriority.UNKNOWN
        by_priority[priority.value] += 1
        if is_overdue(record, now):
            overdue += 1
    completed = by_status[TaskStatus.COMPLETED.value]
    return {
        "total": total,
        "by_status": by_status,
        "by_priority": by_priority,
        "overdue": overdue,
        "completion_rate": round(completed * 100.0 / total, 1) if total else 0.0,
    }
