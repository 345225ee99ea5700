"""
Shift assignment lookups.
Scheduling owns shifts and assignments; the attendance engine only reads them.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import Shift, ShiftAssignment
from .errors import NotFoundError


def get_shift_assignment(db: Session, assignment_id, company_id) -> ShiftAssignment:
    """Assignment with its shift window and user, scoped to the company."""
    assignment = (
        db.query(ShiftAssignment)
        .join(Shift, ShiftAssignment.shift_id == Shift.id)
        .filter(ShiftAssignment.id == assignment_id, Shift.company_id == company_id)
        .first()
    )
    if not assignment:
        raise NotFoundError("Shift assignment not found")
    return assignment


def list_assignments_in_range(
    db: Session,
    company_id,
    start: datetime,
    end: datetime,
    user_id=None,
    department_id=None,
) -> List[ShiftAssignment]:
    """Assignments whose shift starts inside [start, end]."""
    query = (
        db.query(ShiftAssignment)
        .join(Shift, ShiftAssignment.shift_id == Shift.id)
        .filter(
            Shift.company_id == company_id,
            Shift.start_time >= start,
            Shift.start_time <= end,
        )
    )
    if user_id:
        query = query.filter(ShiftAssignment.user_id == user_id)
    if department_id:
        query = query.filter(Shift.department_id == department_id)
    return query.order_by(Shift.start_time.asc(), ShiftAssignment.id.asc()).all()
