"""
Attendance API routes.
Clock events and attendance record listing.
"""
import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user
from ..schemas.attendance import AttendanceActionRequest, AttendanceRecordResponse
from ..services.attendance_records import list_attendance_records, parse_status
from ..services.clock_events import build_clock_event, submit_attendance_action

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.get("", response_model=List[AttendanceRecordResponse])
def list_attendance(
    day: Optional[date] = Query(None, alias="date"),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    status: Optional[str] = Query(None),
    shift_assignment_id: Optional[uuid.UUID] = Query(None, alias="shiftAssignmentId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List the company's attendance records, newest first."""
    return list_attendance_records(
        db,
        user.company_id,
        day=day,
        user_id=user_id,
        status=parse_status(status),
        shift_assignment_id=shift_assignment_id,
    )


@router.post("", response_model=AttendanceRecordResponse)
def submit_attendance(
    payload: AttendanceActionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Apply an attendance action to a shift assignment.
    Actions: clock_in, clock_out, mark_absent, justify_absence, manual_entry.
    """
    event = build_clock_event(
        payload.action,
        latitude=payload.latitude,
        longitude=payload.longitude,
        justification=payload.justification,
        notes=payload.notes,
        clock_in_time=payload.clock_in_time,
        clock_out_time=payload.clock_out_time,
    )
    return submit_attendance_action(db, payload.shift_assignment_id, event, user)
