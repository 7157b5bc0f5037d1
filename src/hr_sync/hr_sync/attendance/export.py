from __future__ import annotations

import io
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Optional

import pandas as pd

from ..records.model import MergedRecord

EXPORT_COLUMNS = ["Employee ID", "Employee", "Job Title", "Date", "Check In", "Check Out", "Work Hours", "Status"]


def _clock(value: Optional[datetime], tz: tzinfo) -> str:
    return value.astimezone(tz).strftime("%H:%M") if value is not None else ""


def to_dataframe(records: Iterable[MergedRecord], *, tz: tzinfo = timezone.utc) -> pd.DataFrame:
    data = []
    for merged in records:
        r = merged.record
        check_in = r.timestamps.get("checkIn")
        data.append(
            {
                "Employee ID": r.subject_id,
                "Employee": r.joined.get("display_name", ""),
                "Job Title": r.joined.get("job_title", ""),
                "Date": check_in.astimezone(tz).date().isoformat() if check_in is not None else "",
                "Check In": _clock(check_in, tz),
                "Check Out": _clock(r.timestamps.get("checkOut"), tz),
                "Work Hours": r.derived.get("work_hours", ""),
                "Status": r.status.value,
            }
        )
    return pd.DataFrame(data, columns=EXPORT_COLUMNS)


def export_excel(records: Iterable[MergedRecord], *, tz: tzinfo = timezone.utc) -> io.BytesIO:
    """Excel workbook kept in memory, never written to disk."""
    df = to_dataframe(records, tz=tz)
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Attendance")
    output.seek(0)
    return output


def export_csv(records: Iterable[MergedRecord], *, tz: tzinfo = timezone.utc) -> io.BytesIO:
    df = to_dataframe(records, tz=tz)
    output = io.BytesIO(df.to_csv(index=False).encode("utf-8"))
    output.seek(0)
    return output
