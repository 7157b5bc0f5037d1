from __future__ import annotations

from ..core.constants import ATTENDANCE_TABLE, EMPLOYEE_TABLE, EXPENSE_TABLE, LEAVE_TABLE, TASK_TABLE
from .base import JoinSpec, TableSpec

EMPLOYEE = TableSpec(name=EMPLOYEE_TABLE, primary_key="employeeid")

ATTENDANCE = TableSpec(
    name=ATTENDANCE_TABLE,
    primary_key="attendanceid",
    joins=(JoinSpec("employee", EMPLOYEE_TABLE, "employeeid", "employeeid", ("firstname", "lastname", "jobtitle")),),
    datetime_columns=("checkintimestamp", "checkouttimestamp"),
)

EXPENSE = TableSpec(name=EXPENSE_TABLE, primary_key="expenseid", datetime_columns=("submissiondate",))

TASK = TableSpec(
    name=TASK_TABLE,
    primary_key="tracklistid",
    joins=(JoinSpec("assignee", EMPLOYEE_TABLE, "assignedto", "employeeid", ("firstname", "lastname", "profilepicturepath")),),
    datetime_columns=("deadline",),
)

LEAVE = TableSpec(
    name=LEAVE_TABLE,
    primary_key="leaveid",
    joins=(JoinSpec("employee", EMPLOYEE_TABLE, "employeeid", "employeeid", ("firstname", "lastname", "jobtitle")),),
    datetime_columns=("startdate", "enddate"),
)

ALL_TABLES = (EMPLOYEE, ATTENDANCE, EXPENSE, TASK, LEAVE)
