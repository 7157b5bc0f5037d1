"""Expense analytics over a projected list.

Money figures only count Approved claims; the status distribution counts every
claim with a known status.
"""
from __future__ import annotations

from typing import Iterable

import pandas as pd

from ..core.enums import ExpenseStatus
from ..records.model import MergedRecord

_COLUMNS = ["status", "category", "amount", "month", "quarter", "year"]


def to_dataframe(records: Iterable[MergedRecord]) -> pd.DataFrame:
    data = []
    for merged in records:
        r = merged.record
        data.append(
            {
                "status": r.status.value,
                "category": r.fields.get("category") or "Uncategorized",
                "amount": r.fields.get("amount"),
                "month": r.derived.get("month"),
                "quarter": r.derived.get("quarter"),
                "year": r.derived.get("year"),
            }
        )
    return pd.DataFrame(data, columns=_COLUMNS)


def _approved(df: pd.DataFrame) -> pd.DataFrame:
    approved = df[(df["status"] == ExpenseStatus.APPROVED.value) & df["amount"].notna()]
    return approved.astype({"amount": float})


def _totals(df: pd.DataFrame, key: str) -> pd.Series:
    return df[df[key].notna()].groupby(key)["amount"].sum()


def category_totals(df: pd.DataFrame) -> list[dict]:
    totals = _totals(_approved(df), "category").sort_values(ascending=False, kind="stable")
    return [{"name": name, "value": round(float(value), 2)} for name, value in totals.items()]


def monthly_totals(df: pd.DataFrame, *, months: int = 12) -> list[dict]:
    totals = _totals(_approved(df), "month").sort_index()
    return [{"name": name, "amount": round(float(value), 2)} for name, value in totals.tail(months).items()]


def quarterly_totals(df: pd.DataFrame) -> list[dict]:
    approved = _approved(df)
    approved = approved[approved["quarter"].notna()]
    totals = approved.groupby(["year", "quarter"])["amount"].sum().sort_index()
    return [{"name": quarter, "amount": round(float(value), 2)} for (_, quarter), value in totals.items()]


def status_distribution(df: pd.DataFrame) -> list[dict]:
    counts = df["status"].value_counts()
    statuses = (ExpenseStatus.APPROVED, ExpenseStatus.PENDING, ExpenseStatus.REJECTED)
    return [{"name": status.value, "value": int(counts.get(status.value, 0))} for status in statuses]


def year_over_year(df: pd.DataFrame) -> list[dict]:
    """Approved total per year with the change against the previous year (%)."""
    totals = _totals(_approved(df), "year").sort_index()
    out = []
    previous = None
    for year, value in totals.items():
        value = round(float(value), 2)
        change = None
        if previous:
            change = round((value - previous) * 100.0 / previous, 1)
        out.append({"year": int(year), "amount": value, "change": change})
        previous = value
    return out


def summarize(records: Iterable[MergedRecord]) -> dict:
    df = to_dataframe(records)
    approved = _approved(df)
    total = round(float(approved["amount"].sum()), 2) if not approved.empty else 0.0
    average = round(float(approved["amount"].mean()), 2) if not approved.empty else 0.0
    return {
        "count": int(len(df)),
        "approved_total": total,
        "approved_average": average,
        "by_category": category_totals(df),
        "by_month": monthly_totals(df),
        "by_quarter": quarterly_totals(df),
        "by_status": status_distribution(df),
        "year_over_year": year_over_year(df),
    }
