"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_WORK_START_TIME = "09:00"
DEFAULT_LATE_THRESHOLD_MINUTES = 30
DEFAULT_HALF_DAY_HOURS = 4
DEFAULT_MUTATION_TIMEOUT_SEC = 15.0

ATTENDANCE_TABLE = "attendance"
EXPENSE_TABLE = "expense"
TASK_TABLE = "tracklist"
LEAVE_TABLE = "leave"
EMPLOYEE_TABLE = "employee"

ATTENDANCE_BUCKET = "attendance"

LEAVE_TYPES = (
    "Annual Leave",
    "Sick Leave",
    "Personal Leave",
    "Study Leave",
    "Maternity Leave",
    "Paternity Leave",
)
