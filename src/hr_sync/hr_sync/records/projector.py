from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from .criteria import FilterCriteria, SortOrder, choice_key
from .model import CanonicalRecord, Identity, MergedRecord


def project(merged: Iterable[MergedRecord], criteria: Optional[FilterCriteria] = None) -> list[MergedRecord]:
    """Derive the visible, ordered list from merged records and filter criteria.

    Pure: recomputed in full on every call. Ties on the sort field are broken by
    identity ascending; records missing the sort field go last.
    """
    criteria = criteria or FilterCriteria()
    needle = criteria.search.strip().casefold()
    visible = [m for m in merged if m.record.identity is not None and _matches(m.record, criteria, needle)]
    return _ordered(visible, criteria.sort)


def identity_sort_key(identity: Identity) -> tuple:
    if isinstance(identity, int):
        return (0, identity, "")
    return (1, 0, str(identity))


def _matches(record: CanonicalRecord, criteria: FilterCriteria, needle: str) -> bool:
    if criteria.statuses and record.status not in criteria.statuses:
        return False

    for name, allowed in criteria.choices.items():
        if not allowed:
            continue
        value = record.get(name)
        if value is None or choice_key(value) not in {choice_key(a) for a in allowed}:
            return False

    for r in criteria.ranges:
        if not r.contains(record.get(r.field)):
            return False

    if needle:
        return any(needle in _text(record.get(name)).casefold() for name in criteria.search_fields)
    return True


def _ordered(items: Sequence[MergedRecord], sort: Optional[SortOrder]) -> list[MergedRecord]:
    by_identity = sorted(items, key=lambda m: identity_sort_key(m.record.identity))
    if sort is None:
        return by_identity

    present = [m for m in by_identity if m.record.get(sort.field) is not None]
    missing = [m for m in by_identity if m.record.get(sort.field) is None]
    # list.sort is stable with reverse=True too, so identity order survives ties.
    present.sort(key=lambda m: _sort_value(m.record.get(sort.field)), reverse=sort.descending)
    return present + missing


def _sort_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return str(value.value).casefold()
    if isinstance(value, str):
        return value.casefold()
    return value


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)
