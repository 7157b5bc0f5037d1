from __future__ import annotations

import asyncio
import logging
from datetime import timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

import mysql.connector

from ..common.datetime_utils import parse_iso_timestamp
from ..core.enums import ChangeType
from ..core.exceptions import DataSourceError, MutationRejectedError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, placeholders, quote_identifier
from .base import OrderBy, Predicate, TableSpec
from .feed import ChangeFeedHub, QueueSubscription
from .storage import LocalBucketStorage

logger = logging.getLogger(__name__)

_SQL_OPS = {"eq": "=", "neq": "<>", "gt": ">", "gte": ">=", "lt": "<", "lte": "<="}


def to_db_datetime(value: Any) -> Any:
    """Timestamp (aware datetime or ISO-8601 text) as the naive UTC datetime a DATETIME column holds."""
    parsed = parse_iso_timestamp(value)
    if parsed is None:
        return value
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def db_values(spec: TableSpec, row: Mapping[str, Any]) -> dict:
    return {c: (to_db_datetime(v) if c in spec.datetime_columns else v) for c, v in row.items()}


class MySQLDataSource:
    """RemoteDataSource over MySQL.

    Blocking connector calls run in worker threads; committed mutations are
    published to the in-process change feed from the event loop.
    """

    def __init__(
        self,
        conn_factory: DatabaseConnection,
        tables: Iterable[TableSpec],
        *,
        storage: LocalBucketStorage,
        feed: Optional[ChangeFeedHub] = None,
    ):
        self._conn_factory = conn_factory
        self._specs = {t.name: t for t in tables}
        self._storage = storage
        self.feed = feed or ChangeFeedHub()

    def _spec(self, table: str) -> TableSpec:
        try:
            return self._specs[table]
        except KeyError:
            raise DataSourceError(f"unknown table: {table}")

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except mysql.connector.IntegrityError as exc:
            raise MutationRejectedError(str(exc)) from exc
        except mysql.connector.Error as exc:
            logger.warning("mysql call failed: %s", exc)
            raise DataSourceError(str(exc)) from exc

    # ---- SQL building ------------------------------------------------------

    def _select_sql(self, spec: TableSpec, predicates: Sequence[Predicate], order_by: Optional[OrderBy]):
        columns = ["t.*"]
        joins = []
        for n, join in enumerate(spec.joins):
            alias = f"j{n}"
            for c in join.columns:
                columns.append(f"{alias}.{quote_identifier(c)} AS {quote_identifier(f'{join.alias}__{c}')}")
            joins.append(
                f"LEFT JOIN {quote_identifier(join.table)} {alias} "
                f"ON {alias}.{quote_identifier(join.foreign_key)} = t.{quote_identifier(join.local_key)}"
            )

        clauses: list[str] = []
        params: list[Any] = []
        for p in predicates:
            column = f"t.{quote_identifier(p.column)}"
            if p.op == "in":
                values = list(p.value)
                if not values:
                    clauses.append("1=0")
                    continue
                clauses.append(f"{column} IN ({placeholders(values)})")
                params.extend(values)
            elif p.value is None and p.op in ("eq", "neq"):
                clauses.append(f"{column} IS {'NOT ' if p.op == 'neq' else ''}NULL")
            else:
                clauses.append(f"{column} {_SQL_OPS[p.op]} %s")
                params.append(to_db_datetime(p.value) if p.column in spec.datetime_columns else p.value)

        sql = f"SELECT {', '.join(columns)} FROM {quote_identifier(spec.name)} t"
        if joins:
            sql += " " + " ".join(joins)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_by is not None:
            sql += f" ORDER BY t.{quote_identifier(order_by.column)} {'ASC' if order_by.ascending else 'DESC'}"
        return sql, tuple(params)

    def _fold_joins(self, spec: TableSpec, row: dict) -> dict:
        for join in spec.joins:
            nested = {c: row.pop(f"{join.alias}__{c}", None) for c in join.columns}
            row[join.alias] = nested if any(v is not None for v in nested.values()) else None
        return row

    def _select_sync(self, spec: TableSpec, predicates: Sequence[Predicate], order_by: Optional[OrderBy]) -> list[dict]:
        sql, params = self._select_sql(spec, predicates, order_by)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, params)
            return [self._fold_joins(spec, dict(r)) for r in fetchall(cur)]

    def _get_sync(self, spec: TableSpec, identity: Any) -> Optional[dict]:
        rows = self._select_sync(spec, [Predicate(spec.primary_key, "eq", identity)], None)
        return rows[0] if rows else None

    def _raw_sync(self, spec: TableSpec, identity: Any) -> Optional[dict]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT * FROM {quote_identifier(spec.name)} WHERE {quote_identifier(spec.primary_key)}=%s",
                (identity,),
            )
            return fetchone(cur)

    def _insert_sync(self, spec: TableSpec, row: Mapping[str, Any]) -> Any:
        row = db_values(spec, row)
        columns = [c for c in row if c != spec.primary_key]
        values = [row[c] for c in columns]
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"INSERT INTO {quote_identifier(spec.name)}({', '.join(quote_identifier(c) for c in columns)}) "
                f"VALUES({placeholders(values)})",
                tuple(values),
            )
            return cur.lastrowid

    def _update_sync(self, spec: TableSpec, identity: Any, fields: Mapping[str, Any]) -> None:
        fields = db_values(spec, fields)
        columns = [c for c in fields if c != spec.primary_key]
        if not columns:
            return
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE {quote_identifier(spec.name)} "
                f"SET {', '.join(f'{quote_identifier(c)}=%s' for c in columns)} "
                f"WHERE {quote_identifier(spec.primary_key)}=%s",
                tuple(fields[c] for c in columns) + (identity,),
            )

    def _delete_sync(self, spec: TableSpec, identity: Any) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"DELETE FROM {quote_identifier(spec.name)} WHERE {quote_identifier(spec.primary_key)}=%s",
                (identity,),
            )

    # ---- RemoteDataSource --------------------------------------------------

    async def select(
        self,
        table: str,
        predicates: Sequence[Predicate] = (),
        order_by: Optional[OrderBy] = None,
    ) -> list[dict]:
        return await self._run(self._select_sync, self._spec(table), list(predicates), order_by)

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        spec = self._spec(table)
        identity = await self._run(self._insert_sync, spec, dict(row))
        confirmed = await self._run(self._get_sync, spec, identity)
        if confirmed is None:
            raise DataSourceError(f"{table} row {identity!r} vanished after insert")
        self.feed.publish_change(ChangeType.INSERT, table, await self._run(self._raw_sync, spec, identity) or confirmed)
        return confirmed

    async def update(self, table: str, identity: Any, fields: Mapping[str, Any]) -> dict:
        spec = self._spec(table)
        old = await self._run(self._raw_sync, spec, identity)
        if old is None:
            raise MutationRejectedError(f"{table} row {identity!r} does not exist")
        await self._run(self._update_sync, spec, identity, dict(fields))
        confirmed = await self._run(self._get_sync, spec, identity)
        if confirmed is None:
            raise MutationRejectedError(f"{table} row {identity!r} was deleted concurrently")
        self.feed.publish_change(ChangeType.UPDATE, table, {**old, **dict(fields)}, old)
        return confirmed

    async def delete(self, table: str, identity: Any) -> None:
        spec = self._spec(table)
        old = await self._run(self._raw_sync, spec, identity)
        await self._run(self._delete_sync, spec, identity)
        if old is not None:
            self.feed.publish_change(ChangeType.DELETE, table, old, old)

    def subscribe(self, table: str, event_types: Iterable[ChangeType] = tuple(ChangeType)) -> QueueSubscription:
        self._spec(table)
        return self.feed.subscribe(table, event_types)

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        return await self._storage.upload(bucket, path, data)
