from datetime import date, datetime, timedelta

import pytest

from app.models.models import Attendance, AttendanceStatus
from app.services.attendance_reports import (
    STATUS_COUNTERS,
    generate_attendance_report,
    parse_report_date,
    percentage,
    status_counters,
)
from app.services.clock_events import build_clock_event, submit_attendance_action
from app.services.errors import ValidationError

from conftest import SHIFT_DAY, make_assignment, make_department, make_user

DAY = SHIFT_DAY.date()


def at(hour, minute=0, days=0):
    return SHIFT_DAY.replace(hour=hour, minute=minute) + timedelta(days=days)


def act(db, assignment, actor, action, now, **fields):
    event = build_clock_event(action, **fields)
    return submit_attendance_action(db, assignment.id, event, actor, now=now, notifier=None)


def report(db, company, start=DAY, end=DAY, **filters):
    return generate_attendance_report(db, company.id, start, end, **filters)


def test_every_status_has_counters():
    assert set(STATUS_COUNTERS) == set(AttendanceStatus)
    with pytest.raises(ValueError):
        status_counters("ON_VACATION")


def test_percentage_rounds_half_up():
    assert percentage(1, 8) == 13
    assert percentage(1, 2) == 50
    assert percentage(3, 0) == 0


def test_single_day_scenario(db, company, assignment, employee, coworker):
    make_assignment(db, coworker)
    act(db, assignment, employee, "clock_in", at(9, 5))
    act(db, assignment, employee, "clock_out", at(16, 50))

    result = report(db, company)

    assert result["period"] == {"startDate": "2024-03-04", "endDate": "2024-03-04"}
    summary = result["summary"]
    assert summary["totalExpectedDays"] == 2
    assert summary["totalWorkedDays"] == 1
    assert summary["onTimeDays"] == 1
    assert summary["lateDays"] == 0
    assert summary["attendanceRate"] == 50
    assert summary["punctualityRate"] == 100
    assert summary["coverageRate"] == 50
    assert summary["totalHoursWorked"] == 8  # 465 min
    assert summary["totalExpectedHours"] == 16

    assert len(result["userStats"]) == 1
    stats = result["userStats"][0]
    assert stats["userId"] == str(employee.id)
    assert stats["userName"] == "Eva Employee"
    assert stats["presentDays"] == 1
    assert stats["totalDays"] == 1
    assert stats["expectedDays"] == 1
    assert stats["attendanceRate"] == 100
    assert stats["totalMinutesWorked"] == 465
    assert stats["avgLateMinutes"] == 0

    assert result["dailyBreakdown"] == [{
        "date": "2024-03-04",
        "totalExpected": 2,
        "present": 1,
        "late": 0,
        "absentJustified": 0,
        "absentUnjustified": 0,
        "halfDay": 0,
        "earlyDeparture": 0,
    }]


def test_absences_count_in_summary_but_not_daily_breakdown(db, company, assignment, employee, coworker, manager):
    other = make_assignment(db, coworker)
    act(db, assignment, employee, "clock_in", at(9, 30))
    act(db, other, manager, "mark_absent", at(10, 0), justification="Flu")

    result = report(db, company)
    summary = result["summary"]

    assert summary["lateDays"] == 1
    assert summary["absentJustifiedDays"] == 1
    assert summary["totalWorkedDays"] == 1
    assert summary["punctualityRate"] == 0
    assert summary["coverageRate"] == 100

    names = [s["userName"] for s in result["userStats"]]
    assert names == ["Bruno Worker", "Eva Employee"]
    bruno, eva = result["userStats"]
    assert bruno["absentJustified"] == 1
    assert bruno["attendanceRate"] == 0
    assert eva["lateDays"] == 1
    assert eva["totalLateMinutes"] == 30
    assert eva["avgLateMinutes"] == 30
    assert eva["punctualityRate"] == 0

    day = result["dailyBreakdown"][0]
    assert day["totalExpected"] == 2
    assert day["late"] == 1
    assert day["absentJustified"] == 0


def test_daily_breakdown_spans_range_in_order(db, company, employee):
    monday = make_assignment(db, employee, start=at(9))
    wednesday = make_assignment(db, employee, start=at(9, days=2))
    make_assignment(db, employee, start=at(9, days=1))
    act(db, wednesday, employee, "clock_in", at(9, 0, days=2))
    act(db, monday, employee, "clock_in", at(9, 0))

    result = report(db, company, DAY, DAY + timedelta(days=2))

    assert [d["date"] for d in result["dailyBreakdown"]] == ["2024-03-04", "2024-03-05", "2024-03-06"]
    assert [d["present"] for d in result["dailyBreakdown"]] == [1, 0, 1]
    assert result["summary"]["totalExpectedDays"] == 3
    assert result["userStats"][0]["expectedDays"] == 3
    assert result["userStats"][0]["attendanceRate"] == 67


def test_records_outside_range_are_ignored(db, company, assignment, employee):
    act(db, assignment, employee, "clock_in", at(9, 0))

    result = report(db, company, DAY + timedelta(days=1), DAY + timedelta(days=1))

    assert result["summary"]["totalExpectedDays"] == 0
    assert result["summary"]["attendanceRate"] == 0
    assert result["userStats"] == []
    assert result["dailyBreakdown"] == []


def test_user_and_department_filters(db, company, assignment, employee):
    warehouse = make_department(db, company, "Warehouse")
    picker = make_user(db, company, "Paulo Picker", department=warehouse)
    other = make_assignment(db, picker, department=warehouse)
    act(db, assignment, employee, "clock_in", at(9, 0))
    act(db, other, picker, "clock_in", at(9, 0))

    by_user = report(db, company, user_id=picker.id)
    assert by_user["summary"]["totalExpectedDays"] == 1
    assert [s["userName"] for s in by_user["userStats"]] == ["Paulo Picker"]

    by_department = report(db, company, department_id=warehouse.id)
    assert by_department["summary"]["totalExpectedDays"] == 1
    assert [s["userName"] for s in by_department["userStats"]] == ["Paulo Picker"]


def test_other_companies_are_excluded(db, company, assignment, employee, outsider):
    foreign = make_assignment(db, outsider)
    act(db, assignment, employee, "clock_in", at(9, 0))
    act(db, foreign, outsider, "clock_in", at(9, 0))

    result = report(db, company)
    assert result["summary"]["totalExpectedDays"] == 1
    assert [s["userId"] for s in result["userStats"]] == [str(employee.id)]


def test_overnight_shift_expected_hours(db, company, employee):
    make_assignment(db, employee, start=at(22), end=at(6, days=1))
    result = report(db, company)
    assert result["summary"]["totalExpectedHours"] == 8


def test_report_is_read_only_and_repeatable(db, company, assignment, employee, coworker):
    make_assignment(db, coworker)
    act(db, assignment, employee, "clock_in", at(9, 20))
    act(db, assignment, employee, "clock_out", at(17, 0))
    before = [(r.id, r.status, r.updated_at) for r in db.query(Attendance).all()]

    first = report(db, company)
    second = report(db, company)

    assert first == second
    assert [(r.id, r.status, r.updated_at) for r in db.query(Attendance).all()] == before


def test_end_before_start_is_rejected(db, company):
    with pytest.raises(ValidationError):
        report(db, company, DAY, DAY - timedelta(days=1))


def test_parse_report_date():
    assert parse_report_date("2024-03-04", "startDate") == date(2024, 3, 4)
    assert parse_report_date("2024-03-04T00:00:00.000Z", "startDate") == date(2024, 3, 4)
    with pytest.raises(ValidationError) as info:
        parse_report_date(None, "startDate")
    assert info.value.message == "Start date and end date are required"
    with pytest.raises(ValidationError):
        parse_report_date("yesterday", "endDate")


def test_half_day_records_are_counted(db, company, assignment):
    db.add(Attendance(
        shift_assignment_id=assignment.id,
        status=AttendanceStatus.HALF_DAY,
        clock_in_time=datetime(2024, 3, 4, 9, 0),
        clock_out_time=datetime(2024, 3, 4, 13, 0),
        total_minutes=240,
    ))
    db.commit()

    result = report(db, company)
    assert result["summary"]["halfDays"] == 1
    assert result["summary"]["totalWorkedDays"] == 0
    assert result["summary"]["totalHoursWorked"] == 4
    assert result["userStats"][0]["halfDays"] == 1
    assert result["dailyBreakdown"][0]["halfDay"] == 1
