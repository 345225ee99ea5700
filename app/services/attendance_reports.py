"""
Attendance report aggregation.

Read-only: scans the shift assignments expected in a date range and the
attendance records actually registered, then derives summary, per-user and
per-day statistics. Expected days are keyed by scheduled shift start and
actual days by clock-in time; the two are tracked apart and merged by date.
"""
from collections import OrderedDict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, contains_eager

from ..models.models import Attendance, AttendanceStatus, Shift, ShiftAssignment
from .errors import ValidationError
from .shift_assignments import list_assignments_in_range
from .time_rules import day_bounds, round_half_up, shift_minutes_by_time_of_day

logger = structlog.get_logger(__name__)

# Counter names per status: (summary, per-user, per-day).
# Every status must appear here; a new status without counters fails at import.
STATUS_COUNTERS = {
    AttendanceStatus.PRESENT: ("onTimeDays", "presentDays", "present"),
    AttendanceStatus.LATE: ("lateDays", "lateDays", "late"),
    AttendanceStatus.ABSENT_JUSTIFIED: ("absentJustifiedDays", "absentJustified", "absentJustified"),
    AttendanceStatus.ABSENT_UNJUSTIFIED: ("absentUnjustifiedDays", "absentUnjustified", "absentUnjustified"),
    AttendanceStatus.HALF_DAY: ("halfDays", "halfDays", "halfDay"),
    AttendanceStatus.EARLY_DEPARTURE: ("earlyDepartureDays", "earlyDeparture", "earlyDeparture"),
}

_unmapped = set(AttendanceStatus) - set(STATUS_COUNTERS)
if _unmapped:
    raise RuntimeError(f"Attendance statuses without report counters: {sorted(s.value for s in _unmapped)}")


def status_counters(status) -> tuple:
    try:
        return STATUS_COUNTERS[AttendanceStatus(status)]
    except (KeyError, ValueError):
        raise ValueError(f"Unhandled attendance status: {status!r}")


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


def parse_report_date(value: Optional[str], name: str) -> date:
    if not value:
        raise ValidationError("Start date and end date are required")
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value}")


def load_actual_records(
    db: Session,
    company_id,
    start: datetime,
    end: datetime,
    user_id=None,
    department_id=None,
) -> List[Attendance]:
    """
    Records clocked in during the range, plus records that never clocked in
    (absences) whose shift was scheduled in the range.
    """
    query = (
        db.query(Attendance)
        .join(Attendance.shift_assignment)
        .join(ShiftAssignment.shift)
        .options(contains_eager(Attendance.shift_assignment).contains_eager(ShiftAssignment.shift))
        .filter(
            Shift.company_id == company_id,
            or_(
                and_(
                    Attendance.clock_in_time.isnot(None),
                    Attendance.clock_in_time >= start,
                    Attendance.clock_in_time <= end,
                ),
                and_(
                    Attendance.clock_in_time.is_(None),
                    Shift.start_time >= start,
                    Shift.start_time <= end,
                ),
            ),
        )
    )
    if user_id:
        query = query.filter(ShiftAssignment.user_id == user_id)
    if department_id:
        query = query.filter(Shift.department_id == department_id)
    return query.order_by(
        Attendance.clock_in_time.asc(), Shift.start_time.asc(), Attendance.id.asc()
    ).all()


def empty_day(day: str) -> Dict:
    return {
        "date": day,
        "totalExpected": 0,
        "present": 0,
        "late": 0,
        "absentJustified": 0,
        "absentUnjustified": 0,
        "halfDay": 0,
        "earlyDeparture": 0,
    }


def empty_user(assignment: ShiftAssignment) -> Dict:
    user = assignment.user
    return {
        "userId": str(assignment.user_id),
        "userName": user.name if user else None,
        "userEmail": user.email if user else None,
        "totalDays": 0,
        "presentDays": 0,
        "lateDays": 0,
        "absentJustified": 0,
        "absentUnjustified": 0,
        "halfDays": 0,
        "earlyDeparture": 0,
        "totalMinutesWorked": 0,
        "totalLateMinutes": 0,
    }


def build_summary(assignments: List[ShiftAssignment], records: List[Attendance]) -> Dict:
    counts = {name: 0 for name, _, _ in STATUS_COUNTERS.values()}
    total_minutes_worked = 0
    for record in records:
        summary_key, _, _ = status_counters(record.status)
        counts[summary_key] += 1
        total_minutes_worked += record.total_minutes or 0

    total_expected_minutes = sum(
        shift_minutes_by_time_of_day(a.shift.start_time, a.shift.end_time) for a in assignments
    )

    total_expected_days = len(assignments)
    total_worked_days = counts["onTimeDays"] + counts["lateDays"]

    return {
        "totalExpectedDays": total_expected_days,
        "totalWorkedDays": total_worked_days,
        "onTimeDays": counts["onTimeDays"],
        "lateDays": counts["lateDays"],
        "absentJustifiedDays": counts["absentJustifiedDays"],
        "absentUnjustifiedDays": counts["absentUnjustifiedDays"],
        "halfDays": counts["halfDays"],
        "earlyDepartureDays": counts["earlyDepartureDays"],
        "totalHoursWorked": round_half_up(total_minutes_worked / 60),
        "totalExpectedHours": round_half_up(total_expected_minutes / 60),
        "attendanceRate": percentage(total_worked_days, total_expected_days),
        "punctualityRate": percentage(counts["onTimeDays"], total_worked_days),
        "coverageRate": percentage(total_worked_days + counts["absentJustifiedDays"], total_expected_days),
    }


def build_user_stats(assignments: List[ShiftAssignment], records: List[Attendance]) -> List[Dict]:
    stats: Dict[str, Dict] = {}
    for record in records:
        assignment = record.shift_assignment
        key = str(assignment.user_id)
        entry = stats.get(key)
        if entry is None:
            entry = stats[key] = empty_user(assignment)

        _, user_key, _ = status_counters(record.status)
        entry["totalDays"] += 1
        entry[user_key] += 1
        if record.status == AttendanceStatus.LATE:
            entry["totalLateMinutes"] += record.minutes_late or 0
        entry["totalMinutesWorked"] += record.total_minutes or 0

    expected_by_user: Dict[str, int] = {}
    for assignment in assignments:
        key = str(assignment.user_id)
        expected_by_user[key] = expected_by_user.get(key, 0) + 1

    for key, entry in stats.items():
        expected = expected_by_user.get(key, 0)
        entry["expectedDays"] = expected
        entry["attendanceRate"] = percentage(entry["presentDays"] + entry["lateDays"], expected)
        entry["punctualityRate"] = percentage(entry["presentDays"], entry["totalDays"])
        entry["totalHoursWorked"] = round_half_up(entry["totalMinutesWorked"] / 60)
        entry["avgLateMinutes"] = (
            round_half_up(entry["totalLateMinutes"] / entry["lateDays"]) if entry["lateDays"] else 0
        )

    return sorted(stats.values(), key=lambda s: ((s["userName"] or "").lower(), s["userId"]))


def build_daily_breakdown(assignments: List[ShiftAssignment], records: Iterable[Attendance]) -> List[Dict]:
    days: Dict[str, Dict] = OrderedDict()

    for assignment in assignments:
        day = assignment.shift.start_time.date().isoformat()
        days.setdefault(day, empty_day(day))["totalExpected"] += 1

    for record in records:
        if record.clock_in_time is None:
            continue
        _, _, day_key = status_counters(record.status)
        day = record.clock_in_time.date().isoformat()
        days.setdefault(day, empty_day(day))[day_key] += 1

    return [days[d] for d in sorted(days)]


def build_attendance_report(
    start_date: date,
    end_date: date,
    assignments: List[ShiftAssignment],
    records: List[Attendance],
) -> Dict:
    """Pure aggregation over already-loaded assignments and records."""
    return {
        "period": {
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
        },
        "summary": build_summary(assignments, records),
        "userStats": build_user_stats(assignments, records),
        "dailyBreakdown": build_daily_breakdown(assignments, records),
    }


def generate_attendance_report(
    db: Session,
    company_id,
    start_date: date,
    end_date: date,
    user_id=None,
    department_id=None,
) -> Dict:
    if start_date is None or end_date is None:
        raise ValidationError("Start date and end date are required")
    if end_date < start_date:
        raise ValidationError("End date must not be before start date")

    start, end = day_bounds(start_date, end_date)
    assignments = list_assignments_in_range(db, company_id, start, end, user_id, department_id)
    records = load_actual_records(db, company_id, start, end, user_id, department_id)

    report = build_attendance_report(start_date, end_date, assignments, records)

    logger.info(
        "attendance_report_generated",
        company_id=str(company_id),
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
        expected=len(assignments),
        records=len(records),
    )
    return report
