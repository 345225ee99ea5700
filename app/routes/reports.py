import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user
from ..services.attendance_reports import generate_attendance_report, parse_report_date

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/attendance")
def attendance_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    department_id: Optional[uuid.UUID] = Query(None, alias="departmentId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Attendance statistics for an inclusive date range.
    Returns period, summary, userStats and dailyBreakdown.
    """
    start = parse_report_date(start_date, "startDate")
    end = parse_report_date(end_date, "endDate")
    return generate_attendance_report(
        db,
        user.company_id,
        start,
        end,
        user_id=user_id,
        department_id=department_id,
    )
