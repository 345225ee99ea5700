"""
Attendance record listing.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import Attendance, AttendanceStatus, Shift, ShiftAssignment
from .errors import ValidationError
from .time_rules import day_bounds


def parse_status(value: Optional[str]) -> Optional[AttendanceStatus]:
    if not value:
        return None
    try:
        return AttendanceStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value}")


def list_attendance_records(
    db: Session,
    company_id,
    day: Optional[date] = None,
    user_id=None,
    status: Optional[AttendanceStatus] = None,
    shift_assignment_id=None,
) -> List[Attendance]:
    """
    Company-scoped attendance records, newest first.
    A shift_assignment_id filter takes priority and ignores the other filters.
    """
    query = (
        db.query(Attendance)
        .join(ShiftAssignment, Attendance.shift_assignment_id == ShiftAssignment.id)
        .join(Shift, ShiftAssignment.shift_id == Shift.id)
        .filter(Shift.company_id == company_id)
    )

    if shift_assignment_id:
        query = query.filter(Attendance.shift_assignment_id == shift_assignment_id)
    else:
        if day:
            start, end = day_bounds(day, day)
            query = query.filter(Shift.start_time >= start, Shift.start_time <= end)
        if user_id:
            query = query.filter(ShiftAssignment.user_id == user_id)
        if status:
            query = query.filter(Attendance.status == status)

    return query.order_by(Attendance.created_at.desc(), Attendance.id.desc()).all()
