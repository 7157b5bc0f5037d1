from __future__ import annotations

import asyncio
import copy
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..core.enums import ChangeType
from ..core.exceptions import DataSourceError, MutationRejectedError
from .base import OrderBy, Predicate, TableSpec, _same
from .feed import ChangeFeedHub, QueueSubscription


class MemoryDataSource:
    """RemoteDataSource kept in process memory.

    Used by the test-suite and the `memory` data source setting. `fail_next`
    injects one failure per (operation, table); `latency` delays every call.
    """

    def __init__(self, tables: Iterable[TableSpec], *, feed: Optional[ChangeFeedHub] = None, latency: float = 0.0):
        self._specs = {t.name: t for t in tables}
        self._rows: dict[str, dict[Any, dict]] = {name: {} for name in self._specs}
        self._next_id: dict[str, int] = {name: 1 for name in self._specs}
        self._failures: dict[tuple[str, str], Exception] = {}
        self.feed = feed or ChangeFeedHub()
        self.latency = latency
        self.objects: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[str, str]] = []

    def seed(self, table: str, rows: Iterable[Mapping[str, Any]]) -> None:
        """Load rows without publishing change events."""
        spec = self._spec(table)
        for row in rows:
            row = dict(row)
            if row.get(spec.primary_key) is None:
                row[spec.primary_key] = self._allocate_id(table)
            else:
                self._next_id[table] = max(self._next_id[table], _as_int(row[spec.primary_key]) + 1)
            self._rows[table][row[spec.primary_key]] = row

    def fail_next(self, op: str, table: str, error: Optional[Exception] = None) -> None:
        self._failures[(op, table)] = error or DataSourceError(f"{op} on {table} failed")

    def raw_rows(self, table: str) -> list[dict]:
        return [copy.deepcopy(r) for r in self._rows[table].values()]

    async def select(
        self,
        table: str,
        predicates: Sequence[Predicate] = (),
        order_by: Optional[OrderBy] = None,
    ) -> list[dict]:
        await self._enter("select", table)
        rows = [self._expand(table, r) for r in self._rows[table].values()]
        rows = [r for r in rows if all(p.matches(r) for p in predicates)]
        if order_by is not None:
            present = [r for r in rows if r.get(order_by.column) is not None]
            missing = [r for r in rows if r.get(order_by.column) is None]
            present.sort(key=lambda r: r[order_by.column], reverse=not order_by.ascending)
            rows = present + missing
        return rows

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        await self._enter("insert", table)
        spec = self._spec(table)
        stored = dict(row)
        stored[spec.primary_key] = self._allocate_id(table)
        self._rows[table][stored[spec.primary_key]] = stored
        confirmed = self._expand(table, stored)
        self.feed.publish_change(ChangeType.INSERT, table, copy.deepcopy(stored))
        return confirmed

    async def update(self, table: str, identity: Any, fields: Mapping[str, Any]) -> dict:
        await self._enter("update", table)
        key = self._find_key(table, identity)
        if key is None:
            raise MutationRejectedError(f"{table} row {identity!r} does not exist")
        old = self._rows[table][key]
        stored = {**old, **dict(fields)}
        self._rows[table][key] = stored
        self.feed.publish_change(ChangeType.UPDATE, table, copy.deepcopy(stored), copy.deepcopy(old))
        return self._expand(table, stored)

    async def delete(self, table: str, identity: Any) -> None:
        await self._enter("delete", table)
        key = self._find_key(table, identity)
        if key is None:
            return
        old = self._rows[table].pop(key)
        self.feed.publish_change(ChangeType.DELETE, table, copy.deepcopy(old), copy.deepcopy(old))

    def subscribe(self, table: str, event_types: Iterable[ChangeType] = tuple(ChangeType)) -> QueueSubscription:
        return self.feed.subscribe(table, event_types)

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        await self._enter("upload", bucket)
        self.objects[(bucket, path)] = bytes(data)
        return f"memory://{bucket}/{path}"

    async def _enter(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if self.latency:
            await asyncio.sleep(self.latency)
        error = self._failures.pop((op, table), None)
        if error is not None:
            raise error
        if op != "upload":
            self._spec(table)

    def _spec(self, table: str) -> TableSpec:
        try:
            return self._specs[table]
        except KeyError:
            raise DataSourceError(f"unknown table: {table}")

    def _allocate_id(self, table: str) -> int:
        value = self._next_id[table]
        self._next_id[table] = value + 1
        return value

    def _find_key(self, table: str, identity: Any) -> Any:
        for key in self._rows[table]:
            if _same(key, identity):
                return key
        return None

    def _expand(self, table: str, row: Mapping[str, Any]) -> dict:
        out = copy.deepcopy(dict(row))
        for join in self._spec(table).joins:
            local = row.get(join.local_key)
            match = None
            if local is not None:
                for candidate in self._rows.get(join.table, {}).values():
                    if _same(candidate.get(join.foreign_key), local):
                        match = {c: candidate.get(c) for c in join.columns}
                        break
            out[join.alias] = match
        return out


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
