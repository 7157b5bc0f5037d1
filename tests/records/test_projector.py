from datetime import date

from src.hr_sync.hr_sync.attendance.normalizer import AttendanceNormalizer
from src.hr_sync.hr_sync.core.enums import AttendanceStatus
from src.hr_sync.hr_sync.records.criteria import FilterCriteria, RangeFilter, SortOrder
from src.hr_sync.hr_sync.records.model import MergedRecord
from src.hr_sync.hr_sync.records.projector import project

NAMES = [
    ("Ana", "Silva", "Absent"),
    ("Joana", "Reis", "Absent"),
    ("Diana", "Costa", "Present"),
    ("Mariana", "Lopes", "Late"),
    ("Bruno", "Ana", "Absent"),
    ("Carlos", "Dias", "Absent"),
    ("Ana", "Paula", "Half Day"),
    ("Pedro", "Nunes", "Absent"),
    ("Luana", "Matos", "Absent"),
    ("Rita", "Sousa", "Not Marked"),
]


def ten_records():
    normalizer = AttendanceNormalizer()
    rows = []
    for n, (first, last, status) in enumerate(NAMES, start=1):
        rows.append(
            {
                "attendanceid": n,
                "status": status,
                "checkintimestamp": f"2024-01-{n:02d}T09:00:00Z",
                "employee": {"firstname": first, "lastname": last},
            }
        )
    return normalizer, [MergedRecord(r) for r in normalizer.normalize_batch(rows)]


def test_status_and_search_filter():
    normalizer, records = ten_records()
    criteria = normalizer.criteria(search="ana", statuses=["Absent"])

    result = project(records, criteria)

    names = [m.record.joined["display_name"] for m in result]
    assert [m.identity for m in result] == [9, 5, 2, 1]
    assert all(m.record.status == AttendanceStatus.ABSENT for m in result)
    assert all("ana" in n.casefold() for n in names)


def test_default_order_is_most_recent_check_in_first():
    normalizer, records = ten_records()

    result = project(records, normalizer.criteria())

    assert [m.identity for m in result] == list(range(10, 0, -1))


def test_ties_broken_by_identity_ascending():
    normalizer = AttendanceNormalizer()
    rows = [{"attendanceid": i, "checkintimestamp": "2024-01-01T09:00:00Z"} for i in (5, 3, 9, 1)]
    records = [MergedRecord(r) for r in normalizer.normalize_batch(rows)]

    result = project(records, normalizer.criteria())

    assert [m.identity for m in result] == [1, 3, 5, 9]


def test_records_without_sort_field_go_last():
    normalizer = AttendanceNormalizer()
    rows = [
        {"attendanceid": 1},
        {"attendanceid": 2, "checkintimestamp": "2024-01-01T09:00:00Z"},
        {"attendanceid": 3, "checkintimestamp": "2024-01-02T09:00:00Z"},
    ]
    records = [MergedRecord(r) for r in normalizer.normalize_batch(rows)]

    assert [m.identity for m in project(records, normalizer.criteria())] == [3, 2, 1]


def test_date_range_is_inclusive():
    normalizer, records = ten_records()
    criteria = normalizer.criteria(ranges=[RangeFilter("checkIn", date(2024, 1, 3), date(2024, 1, 5))])

    assert [m.identity for m in project(records, criteria)] == [5, 4, 3]


def test_projection_is_idempotent():
    normalizer, records = ten_records()
    criteria = normalizer.criteria(search="a", sort=SortOrder("display_name"))

    assert project(records, criteria) == project(records, criteria)


def test_empty_inputs_yield_empty_list():
    normalizer, records = ten_records()

    assert project([], normalizer.criteria()) == []
    assert project(records, normalizer.criteria(search="zzz")) == []
    assert project([]) == []


def test_choice_filter_is_case_insensitive():
    normalizer, records = ten_records()
    criteria = FilterCriteria(choices={"status": frozenset({"late", "HALF DAY"})}, sort=SortOrder("identity"))

    assert [m.identity for m in project(records, criteria)] == [4, 7]
