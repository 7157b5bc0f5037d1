from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import format_duration
from ..core.constants import ATTENDANCE_TABLE
from ..core.enums import AttendanceStatus
from ..records.criteria import SortOrder
from ..records.normalizer import Column, RecordNormalizer, as_optional_text, coerce_identity, nested, person_display


class AttendanceNormalizer(RecordNormalizer):
    """attendance rows joined with `employee{firstname,lastname,jobtitle}`."""

    table = ATTENDANCE_TABLE
    identity_columns = ("attendanceid", "id")
    subject_column = "employeeid"
    status_enum = AttendanceStatus
    timestamp_columns = {
        "checkIn": "checkintimestamp",
        "checkOut": "checkouttimestamp",
    }
    field_columns = {
        "customer_id": Column("customerid", parse=coerce_identity),
        "selfie_path": Column("selfieimagepath", parse=as_optional_text),
    }
    search_fields = ("display_name", "job_title")
    default_sort = SortOrder("checkIn", descending=True)

    def derive(self, timestamps: Mapping[str, Optional[datetime]]) -> dict[str, Any]:
        check_in = timestamps.get("checkIn")
        check_out = timestamps.get("checkOut")
        duration = None
        if check_in is not None and check_out is not None and check_out > check_in:
            duration = check_out - check_in
        return {
            "work_duration": duration,
            "work_hours": format_duration(duration),
            "date": check_in.date() if check_in is not None else None,
        }

    def join(self, row: Mapping[str, Any]) -> dict[str, str]:
        return person_display(nested(row, "employee"))
