from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class SortOrder:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class RangeFilter:
    """Inclusive bounds on one field; a None bound is open."""

    field: str
    low: Any = None
    high: Any = None

    def contains(self, value: Any) -> bool:
        if value is None:
            return False
        if self.low is not None and _comparable(value, self.low) < _bound(self.low):
            return False
        if self.high is not None and _comparable(value, self.high) > _bound(self.high):
            return False
        return True


@dataclass(frozen=True)
class FilterCriteria:
    """UI filter state handed to the projector.

    `statuses` and `choices` are closed-set filters (empty means "all"); `search`
    is a case-insensitive substring match over `search_fields`.
    """

    search: str = ""
    search_fields: tuple[str, ...] = ("display_name",)
    statuses: frozenset = frozenset()
    choices: Mapping[str, frozenset] = field(default_factory=lambda: MappingProxyType({}))
    ranges: tuple[RangeFilter, ...] = ()
    sort: Optional[SortOrder] = None


def choice_key(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().casefold()


def _comparable(value: Any, bound: Any) -> Any:
    # Date bounds on datetime fields compare by calendar day.
    if isinstance(value, datetime) and isinstance(bound, date) and not isinstance(bound, datetime):
        return value.date()
    return value


def _bound(bound: Any) -> Any:
    if isinstance(bound, datetime) and bound.tzinfo is None:
        return bound.replace(tzinfo=timezone.utc)
    return bound
