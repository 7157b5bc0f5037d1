from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .attendance.factory import AttendanceStrategyFactory
from .attendance.model import AttendanceSettings
from .attendance.normalizer import AttendanceNormalizer
from .attendance.service import AttendanceService
from .core.constants import DEFAULT_MUTATION_TIMEOUT_SEC
from .database.connection import DBConfig, DatabaseConnection
from .datasource.base import OrderBy, Predicate, RemoteDataSource
from .datasource.feed import ChangeFeedHub
from .datasource.memory_data_source import MemoryDataSource
from .datasource.mysql_data_source import MySQLDataSource
from .datasource.storage import LocalBucketStorage
from .datasource.tables import ALL_TABLES
from .expenses.normalizer import ExpenseNormalizer
from .leaves.normalizer import LeaveNormalizer
from .leaves.service import LeaveService
from .records.normalizer import Diagnostics
from .records.store import ReconcilingRecordStore
from .runtime import EventLoopThread
from .tasks.normalizer import TaskNormalizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Container:
    runtime: EventLoopThread
    source: RemoteDataSource
    diagnostics: Diagnostics

    attendance_store: ReconcilingRecordStore
    expense_store: ReconcilingRecordStore
    task_store: ReconcilingRecordStore
    leave_store: ReconcilingRecordStore

    attendance_service: AttendanceService
    leave_service: LeaveService

    def stores(self) -> tuple[ReconcilingRecordStore, ...]:
        return (self.attendance_store, self.expense_store, self.task_store, self.leave_store)

    def start(self) -> None:
        """Start the loop thread and activate every view (subscribe, then initial fetch)."""
        self.runtime.start()
        for store in self.stores():
            self.runtime.run(store.activate())
            if store.fetch_error:
                logger.warning("initial load of %s failed: %s", store.table, store.fetch_error)

    def close(self) -> None:
        if not self.runtime.running:
            return
        for store in self.stores():
            self.runtime.run(store.deactivate())
        self.runtime.stop()


def build_source(
    *,
    data_source: str,
    db_config: Optional[dict],
    storage_root: str,
    storage_base_url: str,
    feed: Optional[ChangeFeedHub] = None,
) -> RemoteDataSource:
    feed = feed or ChangeFeedHub()
    if data_source == "memory":
        return MemoryDataSource(ALL_TABLES, feed=feed)
    if data_source == "mysql":
        if not db_config:
            raise ValueError("DB_CONFIG is required for the mysql data source")
        conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
        storage = LocalBucketStorage(storage_root, storage_base_url)
        return MySQLDataSource(conn, ALL_TABLES, storage=storage, feed=feed)
    raise ValueError(f"unknown data source: {data_source!r}")


def build_container(
    *,
    source: RemoteDataSource,
    tenant_id: Any = None,
    mutation_timeout: Optional[float] = DEFAULT_MUTATION_TIMEOUT_SEC,
    attendance_settings: Optional[AttendanceSettings] = None,
    runtime: Optional[EventLoopThread] = None,
) -> Container:
    diagnostics = Diagnostics()
    scope = (Predicate("customerid", "eq", tenant_id),) if tenant_id is not None else ()

    attendance_store = ReconcilingRecordStore(
        source,
        AttendanceNormalizer(diagnostics),
        scope=scope,
        order_by=OrderBy("checkintimestamp", ascending=False),
        refetch_on_change=True,
        mutation_timeout=mutation_timeout,
    )
    expense_store = ReconcilingRecordStore(
        source,
        ExpenseNormalizer(diagnostics),
        scope=scope,
        order_by=OrderBy("submissiondate", ascending=False),
        mutation_timeout=mutation_timeout,
    )
    task_store = ReconcilingRecordStore(
        source,
        TaskNormalizer(diagnostics),
        scope=scope,
        refetch_on_change=True,
        mutation_timeout=mutation_timeout,
    )
    leave_store = ReconcilingRecordStore(
        source,
        LeaveNormalizer(diagnostics),
        scope=scope,
        order_by=OrderBy("startdate", ascending=False),
        refetch_on_change=True,
        mutation_timeout=mutation_timeout,
    )

    attendance_service = AttendanceService(
        attendance_store,
        source,
        settings=attendance_settings,
        strategy_factory=AttendanceStrategyFactory(),
    )

    return Container(
        runtime=runtime or EventLoopThread(),
        source=source,
        diagnostics=diagnostics,
        attendance_store=attendance_store,
        expense_store=expense_store,
        task_store=task_store,
        leave_store=leave_store,
        attendance_service=attendance_service,
        leave_service=LeaveService(leave_store, source),
    )
