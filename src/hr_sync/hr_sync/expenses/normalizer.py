from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from ..core.constants import EXPENSE_TABLE
from ..core.enums import ExpenseStatus
from ..records.criteria import SortOrder
from ..records.normalizer import Column, RecordNormalizer, as_number, as_optional_text, coerce_identity


class ExpenseNormalizer(RecordNormalizer):
    table = EXPENSE_TABLE
    identity_columns = ("expenseid", "id")
    subject_column = "employeeid"
    status_enum = ExpenseStatus
    timestamp_columns = {"submitted": "submissiondate"}
    field_columns = {
        "amount": Column("amount", parse=as_number),
        "category": Column("category"),
        "description": Column("description"),
        "submitted_by": Column("submittedby"),
        "bill_path": Column("billpath", parse=as_optional_text),
        "customer_id": Column("customerid", parse=coerce_identity),
    }
    search_fields = ("description", "category", "submitted_by")
    default_sort = SortOrder("submitted", descending=True)

    def derive(self, timestamps: Mapping[str, Optional[datetime]]) -> dict[str, Any]:
        submitted = timestamps.get("submitted")
        if submitted is None:
            return {"month": None, "quarter": None, "year": None}
        return {
            "month": f"{submitted:%Y-%m}",
            "quarter": f"Q{(submitted.month - 1) // 3 + 1} {submitted.year}",
            "year": submitted.year,
        }
