from __future__ import annotations

from enum import Enum


class AttendanceStatus(str, Enum):
    """Canonical attendance status; wire values are matched case-insensitively."""

    PRESENT = "Present"
    ABSENT = "Absent"
    LATE = "Late"
    HALF_DAY = "Half Day"
    NOT_MARKED = "Not Marked"
    UNKNOWN = "Unknown"


class ExpenseStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    UNKNOWN = "Unknown"


class LeaveStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    UNKNOWN = "Unknown"


class TaskStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    UNKNOWN = "Unknown"


class TaskPriority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    UNKNOWN = "Unknown"


class ChangeType(str, Enum):
    """Event types delivered by a table change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EditState(str, Enum):
    """Lifecycle of an unconfirmed local edit."""

    PENDING = "pending"
    CONFLICT = "conflict"
    FAILED = "failed"
