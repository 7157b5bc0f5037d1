from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from ..core.constants import LEAVE_TABLE
from ..core.enums import LeaveStatus
from ..records.criteria import SortOrder
from ..records.normalizer import Column, RecordNormalizer, as_optional_text, coerce_identity, nested, person_display


class LeaveNormalizer(RecordNormalizer):
    """leave rows joined with `employee{firstname,lastname,jobtitle}`."""

    table = LEAVE_TABLE
    identity_columns = ("leaveid", "id")
    subject_column = "employeeid"
    status_enum = LeaveStatus
    timestamp_columns = {"start": "startdate", "end": "enddate"}
    field_columns = {
        "leave_type": Column("leavetype"),
        "reason": Column("reason", parse=as_optional_text),
        "employee_name": Column("employeename", parse=as_optional_text),
        "customer_id": Column("customerid", parse=coerce_identity),
    }
    search_fields = ("display_name", "employee_name", "leave_type", "reason")
    default_sort = SortOrder("start", descending=True)

    def derive(self, timestamps: Mapping[str, Optional[datetime]]) -> dict[str, Any]:
        start = timestamps.get("start")
        end = timestamps.get("end")
        days = None
        if start is not None and end is not None and end >= start:
            # Both ends are counted.
            days = (end.date() - start.date()).days + 1
        return {"days": days, "year": start.year if start is not None else None}

    def join(self, row: Mapping[str, Any]) -> dict[str, str]:
        return person_display(nested(row, "employee"))
