from __future__ import annotations

import logging

from .connection import DatabaseConnection
from .mysql_base import db_cursor, fetchall

logger = logging.getLogger(__name__)

# Idempotent: CREATE TABLE IF NOT EXISTS only.
SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS employee (
        employeeid INT AUTO_INCREMENT PRIMARY KEY,
        customerid INT NULL,
        firstname VARCHAR(100) NULL,
        lastname VARCHAR(100) NULL,
        jobtitle VARCHAR(100) NULL,
        profilepicturepath VARCHAR(500) NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attendance (
        attendanceid INT AUTO_INCREMENT PRIMARY KEY,
        employeeid INT NULL,
        customerid INT NULL,
        checkintimestamp DATETIME NULL,
        checkouttimestamp DATETIME NULL,
        status VARCHAR(50) NULL,
        selfieimagepath VARCHAR(500) NULL,
        INDEX idx_attendance_customer (customerid),
        INDEX idx_attendance_employee (employeeid)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS expense (
        expenseid INT AUTO_INCREMENT PRIMARY KEY,
        employeeid INT NULL,
        customerid INT NULL,
        amount DECIMAL(12, 2) NULL,
        category VARCHAR(100) NULL,
        description TEXT NULL,
        status VARCHAR(50) NULL,
        submissiondate DATETIME NULL,
        submittedby VARCHAR(200) NULL,
        billpath VARCHAR(500) NULL,
        INDEX idx_expense_customer (customerid)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tracklist (
        tracklistid INT AUTO_INCREMENT PRIMARY KEY,
        employeeid INT NULL,
        assignedto INT NULL,
        customerid INT NULL,
        tasktitle VARCHAR(255) NULL,
        description TEXT NULL,
        status VARCHAR(50) NULL,
        priority VARCHAR(20) NULL,
        deadline DATETIME NULL,
        comments TEXT NULL,
        resources TEXT NULL,
        INDEX idx_tracklist_customer (customerid)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS `leave` (
        leaveid INT AUTO_INCREMENT PRIMARY KEY,
        employeeid INT NULL,
        customerid INT NULL,
        employeename VARCHAR(200) NULL,
        leavetype VARCHAR(50) NULL,
        startdate DATETIME NULL,
        enddate DATETIME NULL,
        reason TEXT NULL,
        status VARCHAR(50) NULL,
        INDEX idx_leave_customer (customerid),
        INDEX idx_leave_employee (employeeid)
    )
    """,
)


def apply_schema(conn_factory: DatabaseConnection) -> None:
    with db_cursor(conn_factory, dictionary=False) as (_, cur):
        for statement in SCHEMA:
            cur.execute(statement)
    logger.info("schema applied (%d tables)", len(SCHEMA))


def list_tables(conn_factory: DatabaseConnection) -> list[str]:
    with db_cursor(conn_factory, dictionary=False) as (_, cur):
        cur.execute("SHOW TABLES")
        return [str(r[0]) for r in fetchall(cur)]
