from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from ..core.enums import EditState

Identity = Union[int, str]


def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


def frozen_mapping(values: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class CanonicalRecord:
    """Normalized, feature-agnostic shape of one store row.

    `derived` is always recomputed from `timestamps` by the normalizer that built
    the record; `joined` is display data from the fetch-time join and is never
    written back.
    """

    identity: Optional[Identity]
    subject_id: Optional[Identity]
    status: Enum
    timestamps: Mapping[str, Optional[datetime]] = field(default_factory=_empty)
    derived: Mapping[str, Any] = field(default_factory=_empty)
    joined: Mapping[str, str] = field(default_factory=_empty)
    fields: Mapping[str, Any] = field(default_factory=_empty)

    def get(self, name: str, default: Any = None) -> Any:
        """Read a field by canonical name across all sections of the record."""
        if name == "identity":
            return self.identity
        if name == "subject_id":
            return self.subject_id
        if name == "status":
            return self.status
        for section in (self.timestamps, self.derived, self.joined, self.fields):
            if name in section:
                return section[name]
        return default

    def with_identity(self, identity: Identity) -> "CanonicalRecord":
        return replace(self, identity=identity)


@dataclass(frozen=True)
class PendingEdit:
    """An uncommitted local mutation layered over a server record.

    `in_flight` is set while its insert or update has been sent and not yet
    answered.
    """

    identity: Identity
    fields: Mapping[str, Any]
    submitted_at: float
    state: EditState = EditState.PENDING
    error: Optional[str] = None
    is_new: bool = False
    in_flight: bool = False

    @property
    def failed(self) -> bool:
        return self.state == EditState.FAILED

    @property
    def conflict(self) -> bool:
        return self.state == EditState.CONFLICT


@dataclass(frozen=True)
class MergedRecord:
    """Read-model handed to presentation: the merged record plus its edit flags."""

    record: CanonicalRecord
    pending: bool = False
    failed: bool = False
    conflict: bool = False
    error: Optional[str] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self.record.identity

    def to_dict(self) -> dict:
        r = self.record
        return {
            "identity": r.identity,
            "subject_id": r.subject_id,
            "status": r.status.value,
            "timestamps": {k: (v.isoformat() if v else None) for k, v in r.timestamps.items()},
            "derived": {k: _jsonable(v) for k, v in r.derived.items()},
            "joined": dict(r.joined),
            "fields": {k: _jsonable(v) for k, v in r.fields.items()},
            "pending": self.pending,
            "failed": self.failed,
            "conflict": self.conflict,
            "error": self.error,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "total_seconds"):
        return int(value.total_seconds())
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value
