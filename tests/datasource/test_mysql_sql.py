from datetime import datetime, timedelta, timezone

import mysql.connector
import pytest

from src.hr_sync.hr_sync.database.connection import DBConfig, DatabaseConnection
from src.hr_sync.hr_sync.database.mysql_base import quote_identifier
from src.hr_sync.hr_sync.datasource.base import OrderBy, Predicate
from src.hr_sync.hr_sync.datasource.mysql_data_source import MySQLDataSource, db_values, to_db_datetime
from src.hr_sync.hr_sync.datasource.tables import ALL_TABLES, ATTENDANCE
from src.hr_sync.hr_sync.datasource.storage import LocalBucketStorage


def make_source(tmp_path):
    return MySQLDataSource(None, ALL_TABLES, storage=LocalBucketStorage(tmp_path, "/storage"))


def test_select_sql_joins_filters_and_orders(tmp_path):
    source = make_source(tmp_path)

    sql, params = source._select_sql(
        ATTENDANCE,
        [Predicate("customerid", "eq", 1), Predicate("status", "in", ["Late", "Absent"]), Predicate("checkouttimestamp", "eq", None)],
        OrderBy("checkintimestamp", ascending=False),
    )

    assert sql == (
        "SELECT t.*, j0.`firstname` AS `employee__firstname`, j0.`lastname` AS `employee__lastname`, "
        "j0.`jobtitle` AS `employee__jobtitle` FROM `attendance` t "
        "LEFT JOIN `employee` j0 ON j0.`employeeid` = t.`employeeid` "
        "WHERE t.`customerid` = %s AND t.`status` IN (%s,%s) AND t.`checkouttimestamp` IS NULL "
        "ORDER BY t.`checkintimestamp` DESC"
    )
    assert params == (1, "Late", "Absent")


def test_joined_columns_are_folded_into_nested_rows(tmp_path):
    source = make_source(tmp_path)
    row = {"attendanceid": 1, "employee__firstname": "Ana", "employee__lastname": None, "employee__jobtitle": None}

    assert source._fold_joins(ATTENDANCE, row) == {
        "attendanceid": 1,
        "employee": {"firstname": "Ana", "lastname": None, "jobtitle": None},
    }
    assert source._fold_joins(ATTENDANCE, {"attendanceid": 2})["employee"] is None


def test_identifiers_are_validated():
    assert quote_identifier("checkintimestamp") == "`checkintimestamp`"
    with pytest.raises(ValueError):
        quote_identifier("status; DROP TABLE attendance")


def test_timestamps_are_written_as_naive_utc():
    values = db_values(
        ATTENDANCE,
        {
            "checkintimestamp": "2024-01-05T09:00:00+07:00",
            "checkouttimestamp": datetime(2024, 1, 5, 17, 30, tzinfo=timezone(timedelta(hours=-3))),
            "status": "2024-01-05T09:00:00+07:00",
            "employeeid": 5,
        },
    )

    assert values["checkintimestamp"] == datetime(2024, 1, 5, 2, 0)
    assert values["checkouttimestamp"] == datetime(2024, 1, 5, 20, 30)
    assert values["status"] == "2024-01-05T09:00:00+07:00"
    assert values["employeeid"] == 5


def test_unparseable_timestamp_is_passed_through():
    assert to_db_datetime(None) is None
    assert to_db_datetime("soon") == "soon"


def test_timestamp_predicates_are_converted(tmp_path):
    source = make_source(tmp_path)

    _, params = source._select_sql(ATTENDANCE, [Predicate("checkintimestamp", "gte", "2024-01-05T00:00:00Z")], None)

    assert params == (datetime(2024, 1, 5, 0, 0),)


def test_connections_use_a_utc_session(monkeypatch):
    captured = {}
    monkeypatch.setattr(mysql.connector, "connect", lambda **kwargs: captured.update(kwargs))
    config = DBConfig.from_dict({"host": "db", "user": "hr", "password": "x", "database": "hr"})

    DatabaseConnection(config).connect()

    assert captured["time_zone"] == "+00:00"
    assert captured["port"] == 3306
