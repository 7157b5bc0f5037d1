import io

import pandas as pd
import pytest

from src.hr_sync.hr_sync.container import build_container
from src.hr_sync.hr_sync.core.constants import DEFAULT_MUTATION_TIMEOUT_SEC
from src.hr_sync.hr_sync.datasource.memory_data_source import MemoryDataSource
from src.hr_sync.hr_sync.datasource.tables import ALL_TABLES
from src.hr_sync.hr_sync.main import create_app


def seeded_source():
    source = MemoryDataSource(ALL_TABLES)
    source.seed(
        "employee",
        [
            {"employeeid": 5, "firstname": "Ana", "lastname": "Silva", "jobtitle": "Engineer"},
            {"employeeid": 6, "firstname": "Binh", "lastname": "Tran", "jobtitle": "Designer"},
        ],
    )
    source.seed(
        "attendance",
        [
            {"attendanceid": 1, "employeeid": 5, "customerid": 1, "status": "Present",
             "checkintimestamp": "2024-01-02T09:00:00Z", "checkouttimestamp": "2024-01-02T17:00:00Z"},
            {"attendanceid": 2, "employeeid": 6, "customerid": 1, "status": "Late",
             "checkintimestamp": "2024-01-02T10:00:00Z"},
            {"attendanceid": 3, "employeeid": 6, "customerid": 2, "status": "Present",
             "checkintimestamp": "2024-01-02T09:00:00Z"},
        ],
    )
    source.seed(
        "expense",
        [
            {"expenseid": 1, "employeeid": 5, "customerid": 1, "status": "Pending", "amount": 40,
             "category": "Meals", "submissiondate": "2024-02-01T10:00:00Z"},
            {"expenseid": 2, "employeeid": 6, "customerid": 1, "status": "Approved", "amount": 120,
             "category": "Travel", "submissiondate": "2024-02-03T10:00:00Z"},
        ],
    )
    source.seed(
        "tracklist",
        [
            {"tracklistid": 1, "assignedto": 5, "customerid": 1, "tasktitle": "Quarterly report",
             "status": "In Progress", "priority": "High", "deadline": "2020-01-01T00:00:00Z"},
            {"tracklistid": 2, "assignedto": 6, "customerid": 1, "tasktitle": "Onboarding",
             "status": "Completed", "priority": "Low", "deadline": "2020-01-01T00:00:00Z"},
            {"tracklistid": 3, "assignedto": 6, "customerid": 1, "tasktitle": "Roadmap",
             "status": "To Do", "priority": "Medium", "deadline": "2999-01-01T00:00:00Z"},
        ],
    )
    source.seed(
        "leave",
        [
            {"leaveid": 1, "employeeid": 6, "customerid": 1, "leavetype": "Sick Leave", "status": "Pending",
             "startdate": "2024-02-05T00:00:00Z", "enddate": "2024-02-06T00:00:00Z"},
        ],
    )
    return source


@pytest.fixture
def app_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    source = seeded_source()
    container = build_container(source=source, tenant_id=1)
    app = create_app(container=container)
    yield app.test_client(), source
    container.close()


def test_health_reports_active_views(app_env):
    client, _ = app_env

    body = client.get("/api/health").get_json()

    assert body["success"] is True
    assert body["views"]["attendance"] == {"active": True, "fetch_error": None}
    assert set(body["views"]) == {"attendance", "expense", "tracklist", "leave"}


def test_attendance_list_is_scoped_to_tenant(app_env):
    client, _ = app_env

    body = client.get("/api/attendance").get_json()

    assert body["count"] == 2
    assert [item["identity"] for item in body["items"]] == [2, 1]
    assert body["items"][1]["joined"]["display_name"] == "Ana Silva"
    assert body["items"][1]["derived"]["work_hours"] == "8h 00m"


def test_attendance_list_filters(app_env):
    client, _ = app_env

    late = client.get("/api/attendance?status=late").get_json()
    searched = client.get("/api/attendance?q=engineer").get_json()

    assert [item["identity"] for item in late["items"]] == [2]
    assert [item["identity"] for item in searched["items"]] == [1]


def test_invalid_filters_are_rejected(app_env):
    client, _ = app_env

    assert client.get("/api/attendance?status=sleeping").status_code == 400
    assert client.get("/api/attendance?from=2024-02-01&to=2024-01-01").status_code == 400


def test_unknown_record_is_404(app_env):
    client, _ = app_env

    assert client.get("/api/attendance/99").status_code == 404
    assert client.get("/api/attendance/3").status_code == 404
    assert client.patch("/api/attendance/99", json={"status": "Late"}).status_code == 404
    assert client.patch("/api/expenses/99", json={"amount": 1}).status_code == 404


def test_checkin_then_duplicate_checkin(app_env):
    client, source = app_env

    first = client.post("/api/attendance/checkin", json={"employee_id": 5})
    second = client.post("/api/attendance/checkin", json={"employee_id": 5})

    assert first.status_code == 201
    assert first.get_json()["record"]["subject_id"] == 5
    assert first.get_json()["record"]["pending"] is False
    assert second.status_code == 400
    assert len(source.raw_rows("attendance")) == 4


def test_checkin_with_selfie_form(app_env):
    client, source = app_env

    response = client.post(
        "/api/attendance/checkin",
        data={"employee_id": "6", "selfie": (io.BytesIO(b"jpeg"), "me.jpg")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 201
    assert response.get_json()["record"]["fields"]["selfie_path"].startswith("memory://attendance/selfies/6/")
    assert list(source.objects.values()) == [b"jpeg"]


def test_checkout_without_checkin_is_400(app_env):
    client, _ = app_env

    assert client.post("/api/attendance/checkout", json={"employee_id": 5}).status_code == 400


def test_attendance_stats_and_export(app_env):
    client, _ = app_env

    stats = client.get("/api/attendance/stats").get_json()["stats"]
    export = client.get("/api/attendance/export?format=xlsx")

    assert stats["total"] == 2
    assert stats["attendance_rate"] == 100.0
    assert export.status_code == 200
    df = pd.read_excel(io.BytesIO(export.data), sheet_name="Attendance")
    assert sorted(df["Employee ID"]) == [5, 6]
    assert client.get("/api/attendance/export?format=pdf").status_code == 400


def test_expense_edit_is_confirmed(app_env):
    client, source = app_env

    response = client.patch("/api/expenses/1", json={"status": "approved"})

    body = response.get_json()
    assert response.status_code == 200
    assert body["confirmed"] is True
    assert body["record"]["status"] == "Approved"
    assert body["record"]["pending"] is False
    assert source.raw_rows("expense")[0]["status"] == "Approved"


def test_expense_edit_validation(app_env):
    client, _ = app_env

    assert client.patch("/api/expenses/1", json={"salary": 10}).status_code == 400
    assert client.patch("/api/expenses/1", json={"amount": "lots"}).status_code == 400
    assert client.patch("/api/expenses/1", data="not json").status_code == 400


def test_failed_edit_stays_visible_and_can_be_retried(app_env):
    client, source = app_env
    source.fail_next("update", "expense")

    failed = client.patch("/api/expenses/1", json={"amount": 45}).get_json()
    listed = client.get("/api/expenses/1").get_json()["record"]
    retried = client.post("/api/expenses/1/retry").get_json()

    assert failed["success"] is False
    assert failed["record"]["failed"] is True
    assert failed["record"]["fields"]["amount"] == 45
    assert listed["failed"] is True
    assert retried == {"success": True, "confirmed": True}
    assert client.get("/api/expenses/1").get_json()["record"]["pending"] is False


def test_failed_edit_can_be_discarded(app_env):
    client, source = app_env
    source.fail_next("update", "expense")
    client.patch("/api/expenses/1", json={"amount": 45})

    assert client.delete("/api/expenses/1/edit").get_json() == {"success": True}
    assert client.get("/api/expenses/1").get_json()["record"]["fields"]["amount"] == 40


def test_expense_create_and_delete(app_env):
    client, source = app_env

    created = client.post("/api/expenses", json={"subject_id": 5, "amount": 12.5, "category": "Meals"})
    identity = created.get_json()["identity"]

    assert created.status_code == 201
    assert identity == 3
    assert source.raw_rows("expense")[-1]["customerid"] == 1

    assert client.delete(f"/api/expenses/{identity}").status_code == 200
    assert client.get(f"/api/expenses/{identity}").status_code == 404


def test_attendance_has_no_generic_create(app_env):
    client, _ = app_env

    assert client.post("/api/attendance", json={"status": "Present"}).status_code == 405


def test_refresh_failure_is_reported_and_dismissable(app_env):
    client, source = app_env
    source.fail_next("select", "expense")

    refreshed = client.post("/api/expenses/refresh")

    assert refreshed.status_code == 502
    assert client.get("/api/expenses").get_json()["fetch_error"] == "select on expense failed"
    assert client.get("/api/expenses").get_json()["count"] == 2
    client.delete("/api/expenses/fetch-error")
    assert client.get("/api/expenses").get_json()["fetch_error"] is None


def test_expense_analytics(app_env):
    client, _ = app_env

    analytics = client.get("/api/expenses/analytics").get_json()["analytics"]

    assert analytics["approved_total"] == 120.0
    assert analytics["by_category"] == [{"name": "Travel", "value": 120.0}]


def test_task_overdue_and_stats(app_env):
    client, _ = app_env

    overdue = client.get("/api/tasks/overdue").get_json()
    stats = client.get("/api/tasks/stats").get_json()["stats"]
    high = client.get("/api/tasks?priority=high").get_json()

    assert [item["identity"] for item in overdue["items"]] == [1]
    assert stats["overdue"] == 1
    assert stats["completion_rate"] == 33.3
    assert [item["identity"] for item in high["items"]] == [1]


def test_patch_of_unknown_record_leaves_no_edit_behind(app_env):
    client, source = app_env

    assert client.patch("/api/expenses/3", json={"amount": 99}).status_code == 404
    created = client.post("/api/expenses", json={"subject_id": 6, "amount": 10, "category": "Meals"}).get_json()

    assert created["identity"] == 3
    assert created["record"]["fields"]["amount"] == 10
    assert created["record"]["pending"] is False and created["record"]["failed"] is False
    assert ("update", "expense") not in source.calls


def test_stores_use_default_mutation_timeout():
    container = build_container(source=seeded_source(), tenant_id=1)

    assert {store.mutation_timeout for store in container.stores()} == {DEFAULT_MUTATION_TIMEOUT_SEC}


def test_leave_apply_decide_and_list(app_env):
    client, source = app_env

    applied = client.post(
        "/api/leaves/apply",
        json={"employee_id": 5, "leave_type": "Annual Leave", "start_date": "2024-03-04", "end_date": "2024-03-08"},
    )
    identity = applied.get_json()["record"]["identity"]
    decided = client.post(f"/api/leaves/{identity}/status", json={"status": "Approved"})
    again = client.post(f"/api/leaves/{identity}/status", json={"status": "Rejected"})
    mine = client.get("/api/leaves/mine?employee_id=5").get_json()
    sick = client.get("/api/leaves?leave_type=sick%20leave").get_json()
    stats = client.get("/api/leaves/stats").get_json()["stats"]

    assert applied.status_code == 201
    assert applied.get_json()["record"]["derived"]["days"] == 5
    assert decided.get_json()["record"]["status"] == "Approved"
    assert again.status_code == 409
    assert [item["identity"] for item in mine["items"]] == [identity]
    assert [item["identity"] for item in sick["items"]] == [1]
    assert stats["by_status"] == {"Pending": 1, "Approved": 1, "Rejected": 0}
    assert source.raw_rows("leave")[-1]["employeename"] == "Ana Silva"


def test_leave_validation_and_cancel(app_env):
    client, source = app_env

    bad_type = client.post(
        "/api/leaves/apply",
        json={"employee_id": 5, "leave_type": "Nap", "start_date": "2024-03-04", "end_date": "2024-03-04"},
    )
    not_owner = client.post("/api/leaves/1/cancel", json={"employee_id": 5})
    cancelled = client.post("/api/leaves/1/cancel", json={"employee_id": 6})

    assert bad_type.status_code == 400
    assert not_owner.status_code == 400
    assert cancelled.get_json() == {"success": True}
    assert source.raw_rows("leave") == []
    assert client.post("/api/leaves", json={"status": "Pending"}).status_code == 405
