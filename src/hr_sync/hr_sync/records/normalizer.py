from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional

from ..common.datetime_utils import parse_iso_timestamp, to_iso
from ..core.exceptions import ValidationError
from .criteria import FilterCriteria, RangeFilter, SortOrder
from .model import CanonicalRecord, Identity, frozen_mapping

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s_\-]+")


class Diagnostics:
    """Diagnostic channel for malformed wire values.

    Each distinct (table, field, value, problem) combination is logged once;
    `count` keeps the total number of occurrences.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger
        self._seen: set[tuple[str, str, str, str]] = set()
        self.count = 0

    def report(self, table: str, field: str, value: Any, problem: str) -> None:
        self.count += 1
        key = (table, field, repr(value), problem)
        if key in self._seen:
            return
        self._seen.add(key)
        self._log.warning("%s.%s: %s (%r)", table, field, problem, value)


def coerce_identity(value: Any) -> Optional[Identity]:
    """Stable identity key: integral values become int, other non-empty text stays str."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return int(text)
        return text
    return None


def match_enum(enum_cls: type[Enum], value: Any) -> Optional[Enum]:
    """Case-insensitive match on member name or value, ignoring spaces, '_' and '-'."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return None
    key = _SEPARATORS.sub("", str(value)).casefold()
    if not key:
        return None
    for member in enum_cls:
        if key in (_SEPARATORS.sub("", member.name).casefold(), _SEPARATORS.sub("", str(member.value)).casefold()):
            return member
    return None


def as_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def as_optional_text(value: Any) -> Optional[str]:
    text = as_text(value)
    return text or None


def as_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    return float(value)


def enum_parser(enum_cls: type[Enum]) -> Callable[[Any], Enum]:
    unknown = enum_cls["UNKNOWN"]

    def parse(value: Any) -> Enum:
        return match_enum(enum_cls, value) or unknown

    return parse


def _dump_plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_iso(value)
    return value


@dataclass(frozen=True)
class Column:
    """Maps a canonical field to its wire column with parse/dump converters.

    `parse` may raise ValueError/TypeError on malformed input; the normalizer
    then substitutes `default` and reports the value.
    """

    wire: str
    parse: Callable[[Any], Any] = as_text
    dump: Callable[[Any], Any] = _dump_plain
    default: Any = None


def nested(row: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = row.get(key)
    return value if isinstance(value, Mapping) else {}


def person_display(person: Mapping[str, Any]) -> dict[str, str]:
    """Display name and avatar initials from a joined employee sub-record."""
    first = as_text(person.get("firstname"))
    last = as_text(person.get("lastname"))
    name = f"{first} {last}".strip()
    initials = "".join(part[0] for part in (first, last) if part).upper()
    return {"display_name": name, "initials": initials, "job_title": as_text(person.get("jobtitle"))}


class RecordNormalizer(ABC):
    """Converts raw store rows of one table into CanonicalRecords.

    Total by contract: any row, however incomplete or malformed, normalizes
    without raising. Subclasses declare the wire layout and `derive`.
    """

    table: str = ""
    identity_columns: tuple[str, ...] = ("id",)
    subject_column: Optional[str] = None
    status_column: str = "status"
    status_enum: type[Enum]
    timestamp_columns: Mapping[str, str] = {}
    field_columns: Mapping[str, Column] = {}
    search_fields: tuple[str, ...] = ("display_name",)
    default_sort: Optional[SortOrder] = None

    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics or Diagnostics()

    @property
    def primary_key(self) -> str:
        return self.identity_columns[0]

    @abstractmethod
    def derive(self, timestamps: Mapping[str, Optional[datetime]]) -> dict[str, Any]:
        """Computed fields; must depend on `timestamps` only."""
        raise NotImplementedError

    def join(self, row: Mapping[str, Any]) -> dict[str, str]:
        return {}

    # ---- wire -> canonical -------------------------------------------------

    def identity_of(self, row: Any) -> Optional[Identity]:
        if not isinstance(row, Mapping):
            return None
        for column in self.identity_columns:
            identity = coerce_identity(row.get(column))
            if identity is not None:
                return identity
        return None

    def normalize(self, row: Any) -> CanonicalRecord:
        if not isinstance(row, Mapping):
            self.diagnostics.report(self.table, "*", row, "row is not a mapping")
            row = {}

        timestamps = {name: self._timestamp(row, name, column) for name, column in self.timestamp_columns.items()}
        return CanonicalRecord(
            identity=self.identity_of(row),
            subject_id=coerce_identity(row.get(self.subject_column)) if self.subject_column else None,
            status=self._status(row.get(self.status_column)),
            timestamps=frozen_mapping(timestamps),
            derived=frozen_mapping(self.derive(timestamps)),
            joined=frozen_mapping(self.join(row)),
            fields=frozen_mapping({name: self._field(row, name, column) for name, column in self.field_columns.items()}),
        )

    def normalize_batch(self, rows: Optional[Iterable[Any]]) -> list[CanonicalRecord]:
        """Normalize a page of rows; rows without a usable identity are skipped."""
        out: list[CanonicalRecord] = []
        for row in rows or ():
            record = self.normalize(row)
            if record.identity is None:
                self.diagnostics.report(self.table, self.primary_key, row, "row has no identity, skipped")
                continue
            out.append(record)
        return out

    def _status(self, value: Any) -> Enum:
        status = match_enum(self.status_enum, value)
        if status is None:
            if value not in (None, ""):
                self.diagnostics.report(self.table, self.status_column, value, "unrecognized status")
            return self.status_enum["UNKNOWN"]
        return status

    def _timestamp(self, row: Mapping[str, Any], name: str, column: str) -> Optional[datetime]:
        value = row.get(column)
        parsed = parse_iso_timestamp(value)
        if parsed is None and value not in (None, ""):
            self.diagnostics.report(self.table, column, value, "unparseable timestamp")
        return parsed

    def _field(self, row: Mapping[str, Any], name: str, column: Column) -> Any:
        value = row.get(column.wire)
        try:
            parsed = column.parse(value)
        except (TypeError, ValueError):
            self.diagnostics.report(self.table, column.wire, value, "malformed value")
            return column.default
        if isinstance(parsed, Enum) and parsed.name == "UNKNOWN" and value not in (None, ""):
            self.diagnostics.report(self.table, column.wire, value, "unrecognized value")
        return parsed

    # ---- local edits -------------------------------------------------------

    def coerce_fields(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Validate and convert a local edit (canonical names) to canonical values."""
        out: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "status":
                status = match_enum(self.status_enum, value)
                if status is None:
                    raise ValidationError(f"invalid status: {value!r}")
                out[name] = status
            elif name == "subject_id":
                out[name] = coerce_identity(value)
            elif name in self.timestamp_columns:
                parsed = parse_iso_timestamp(value)
                if parsed is None and value not in (None, ""):
                    raise ValidationError(f"invalid timestamp for {name}: {value!r}")
                out[name] = parsed
            elif name in self.field_columns:
                try:
                    parsed = self.field_columns[name].parse(value)
                except (TypeError, ValueError):
                    raise ValidationError(f"invalid value for {name}: {value!r}")
                if isinstance(parsed, Enum) and parsed.name == "UNKNOWN" and match_enum(type(parsed), value) is None:
                    raise ValidationError(f"invalid value for {name}: {value!r}")
                out[name] = parsed
            else:
                raise ValidationError(f"unknown field: {name}")
        return out

    def apply_overrides(self, record: CanonicalRecord, overrides: Mapping[str, Any]) -> CanonicalRecord:
        """Layer canonical overrides on a record and recompute `derived`."""
        if not overrides:
            return record
        status = record.status
        subject_id = record.subject_id
        timestamps = dict(record.timestamps)
        fields = dict(record.fields)
        for name, value in overrides.items():
            if name == "status":
                status = value
            elif name == "subject_id":
                subject_id = value
            elif name in self.timestamp_columns:
                timestamps[name] = value
            else:
                fields[name] = value
        return replace(
            record,
            status=status,
            subject_id=subject_id,
            timestamps=frozen_mapping(timestamps),
            derived=frozen_mapping(self.derive(timestamps)),
            fields=frozen_mapping(fields),
        )

    def draft(self, identity: Identity, fields: Mapping[str, Any]) -> CanonicalRecord:
        """Record shown for a create that the store has not acknowledged yet."""
        return self.apply_overrides(self.normalize({}).with_identity(identity), fields)

    def matches(self, record: CanonicalRecord, fields: Mapping[str, Any]) -> bool:
        return all(record.get(name) == value for name, value in fields.items())

    def to_wire(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Canonical field values -> wire payload for insert/update."""
        out: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "status":
                out[self.status_column] = value.value if isinstance(value, Enum) else value
            elif name == "subject_id":
                if self.subject_column:
                    out[self.subject_column] = value
            elif name in self.timestamp_columns:
                out[self.timestamp_columns[name]] = to_iso(value)
            elif name in self.field_columns:
                column = self.field_columns[name]
                out[column.wire] = column.dump(value)
        return out

    # ---- view helpers ------------------------------------------------------

    def criteria(
        self,
        *,
        search: str = "",
        statuses: Iterable[Any] = (),
        choices: Optional[Mapping[str, Iterable[Any]]] = None,
        ranges: Iterable[RangeFilter] = (),
        sort: Optional[SortOrder] = None,
    ) -> FilterCriteria:
        """FilterCriteria with this feature's search fields and default order."""
        parsed_statuses = set()
        for value in statuses:
            status = match_enum(self.status_enum, value)
            if status is None:
                raise ValidationError(f"invalid status filter: {value!r}")
            parsed_statuses.add(status)
        return FilterCriteria(
            search=search or "",
            search_fields=self.search_fields,
            statuses=frozenset(parsed_statuses),
            choices=frozen_mapping({k: frozenset(v) for k, v in (choices or {}).items()}),
            ranges=tuple(ranges),
            sort=sort or self.default_sort,
        )
