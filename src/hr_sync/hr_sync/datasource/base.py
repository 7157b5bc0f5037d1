from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Protocol, Sequence

from ..core.enums import ChangeType

_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "in")


@dataclass(frozen=True)
class Predicate:
    """Filter predicate on one column, e.g. Predicate("customerid", "eq", 7)."""

    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPS:
            raise ValueError(f"unsupported predicate op: {self.op!r}")

    def matches(self, row: Mapping[str, Any]) -> bool:
        actual = row.get(self.column)
        if self.op == "eq":
            return _same(actual, self.value)
        if self.op == "neq":
            return not _same(actual, self.value)
        if self.op == "in":
            return any(_same(actual, v) for v in self.value)
        if actual is None:
            return False
        try:
            if self.op == "gt":
                return actual > self.value
            if self.op == "gte":
                return actual >= self.value
            if self.op == "lt":
                return actual < self.value
            return actual <= self.value
        except TypeError:
            return False


def _same(a: Any, b: Any) -> bool:
    # Wire ids arrive as int or numeric text depending on the source.
    if a == b:
        return True
    return a is not None and b is not None and str(a) == str(b)


@dataclass(frozen=True)
class OrderBy:
    column: str
    ascending: bool = True


@dataclass(frozen=True)
class JoinSpec:
    """Join expansion: nests `columns` of `table` under `alias` in each row."""

    alias: str
    table: str
    local_key: str
    foreign_key: str
    columns: tuple[str, ...]


@dataclass(frozen=True)
class TableSpec:
    """A store table; `datetime_columns` are kept as UTC DATETIME by SQL backends."""

    name: str
    primary_key: str
    joins: tuple[JoinSpec, ...] = field(default=())
    datetime_columns: tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class ChangeEvent:
    """One change-feed notification; `row` is the new row, `old_row` the previous one."""

    type: ChangeType
    table: str
    row: Mapping[str, Any]
    old_row: Optional[Mapping[str, Any]] = None


class Subscription(Protocol):
    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        raise NotImplementedError

    def unsubscribe(self) -> None:
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        raise NotImplementedError


class RemoteDataSource(Protocol):
    """Tabular store used by every view.

    Note (DIP): stores, subscribers and controllers depend on this interface only,
    so tests can substitute MemoryDataSource. Failures raise DataSourceError.
    """

    async def select(
        self,
        table: str,
        predicates: Sequence[Predicate] = (),
        order_by: Optional[OrderBy] = None,
    ) -> list[dict]:
        raise NotImplementedError

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        raise NotImplementedError

    async def update(self, table: str, identity: Any, fields: Mapping[str, Any]) -> dict:
        raise NotImplementedError

    async def delete(self, table: str, identity: Any) -> None:
        raise NotImplementedError

    def subscribe(self, table: str, event_types: Iterable[ChangeType] = tuple(ChangeType)) -> Subscription:
        raise NotImplementedError

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        raise NotImplementedError
