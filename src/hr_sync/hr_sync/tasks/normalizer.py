from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from ..core.constants import TASK_TABLE
from ..core.enums import TaskPriority, TaskStatus
from ..records.criteria import SortOrder
from ..records.model import CanonicalRecord
from ..records.normalizer import (
    Column,
    RecordNormalizer,
    as_optional_text,
    coerce_identity,
    enum_parser,
    nested,
    person_display,
)


class TaskNormalizer(RecordNormalizer):
    """tracklist rows joined with `assignee:employee!assignedto`."""

    table = TASK_TABLE
    identity_columns = ("tracklistid", "id")
    subject_column = "assignedto"
    status_enum = TaskStatus
    timestamp_columns = {"deadline": "deadline"}
    field_columns = {
        "title": Column("tasktitle"),
        "description": Column("description"),
        "priority": Column("priority", parse=enum_parser(TaskPriority), default=TaskPriority.UNKNOWN),
        "comments": Column("comments", parse=as_optional_text),
        "resources": Column("resources", parse=as_optional_text),
        "created_by": Column("employeeid", parse=coerce_identity),
        "customer_id": Column("customerid", parse=coerce_identity),
    }
    search_fields = ("title", "description", "display_name")
    default_sort = SortOrder("deadline")

    def derive(self, timestamps: Mapping[str, Optional[datetime]]) -> dict[str, Any]:
        deadline = timestamps.get("deadline")
        return {"due_date": deadline.date() if deadline is not None else None}

    def join(self, row: Mapping[str, Any]) -> dict[str, str]:
        return person_display(nested(row, "assignee"))


def is_overdue(record: CanonicalRecord, now: datetime) -> bool:
    """Past its deadline and not completed; depends on `now`, so never stored in `derived`."""
    deadline = record.timestamps.get("deadline")
    return deadline is not None and deadline < now and record.status != TaskStatus.COMPLETED
