from datetime import datetime, timezone

from src.hr_sync.hr_sync.core.enums import TaskPriority, TaskStatus
from src.hr_sync.hr_sync.records.model import MergedRecord
from src.hr_sync.hr_sync.records.normalizer import Diagnostics
from src.hr_sync.hr_sync.tasks.normalizer import TaskNormalizer, is_overdue
from src.hr_sync.hr_sync.tasks.stats import summarize

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def task(task_id, status, deadline, priority="Medium"):
    return {
        "tracklistid": task_id,
        "assignedto": 5,
        "employeeid": 2,
        "tasktitle": f"Task {task_id}",
        "status": status,
        "deadline": deadline,
        "priority": priority,
        "assignee": {"firstname": "Ana", "lastname": "Silva", "profilepicturepath": None},
    }


def test_task_row_normalizes_priority_and_assignee():
    diagnostics = Diagnostics()
    normalizer = TaskNormalizer(diagnostics)

    high = normalizer.normalize(task(1, "in progress", "2024-05-01T17:00:00Z", priority="high"))
    odd = normalizer.normalize(task(2, "To Do", None, priority="urgent"))

    assert high.status == TaskStatus.IN_PROGRESS
    assert high.fields["priority"] == TaskPriority.HIGH
    assert high.fields["created_by"] == 2
    assert high.joined["display_name"] == "Ana Silva"
    assert high.joined["initials"] == "AS"
    assert str(high.derived["due_date"]) == "2024-05-01"
    assert odd.fields["priority"] == TaskPriority.UNKNOWN
    assert odd.derived["due_date"] is None
    assert diagnostics.count == 1


def test_overdue_needs_past_deadline_and_open_status():
    normalizer = TaskNormalizer()

    assert is_overdue(normalizer.normalize(task(1, "In Progress", "2024-05-01T00:00:00Z")), NOW)
    assert not is_overdue(normalizer.normalize(task(2, "Completed", "2024-05-01T00:00:00Z")), NOW)
    assert not is_overdue(normalizer.normalize(task(3, "To Do", "2024-07-01T00:00:00Z")), NOW)
    assert not is_overdue(normalizer.normalize(task(4, "To Do", None)), NOW)


def test_task_stats():
    records = [
        MergedRecord(r)
        for r in TaskNormalizer().normalize_batch(
            [
                task(1, "In Progress", "2024-05-01T00:00:00Z", "High"),
                task(2, "Completed", "2024-05-01T00:00:00Z", "Low"),
                task(3, "To Do", "2024-07-01T00:00:00Z", "High"),
            ]
        )
    ]

    stats = summarize(records, now=NOW)

    assert stats["total"] == 3
    assert stats["overdue"] == 1
    assert stats["completion_rate"] == 33.3
    assert stats["by_priority"]["High"] == 2
    assert stats["by_status"]["Completed"] == 1


def test_task_edit_writes_wire_columns():
    normalizer = TaskNormalizer()

    fields = normalizer.coerce_fields({"priority": "low", "deadline": "2024-07-01T09:00:00Z", "title": " Ship "})

    assert normalizer.to_wire(fields) == {
        "priority": "Low",
        "deadline": "2024-07-01T09:00:00+00:00",
        "tasktitle": "Ship",
    }
