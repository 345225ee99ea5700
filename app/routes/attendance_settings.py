from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user, require_roles
from ..schemas.attendance import AttendanceSettingsResponse, AttendanceSettingsUpdate
from ..services.attendance_settings import get_attendance_settings, update_attendance_settings

router = APIRouter(prefix="/attendance-settings", tags=["attendance-settings"])


@router.get("", response_model=AttendanceSettingsResponse)
def read_settings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Company attendance policy; defaults when the company never saved one."""
    return get_attendance_settings(db, user.company_id)


@router.put("", response_model=AttendanceSettingsResponse)
def write_settings(
    payload: AttendanceSettingsUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ADMIN")),
):
    changes = payload.model_dump(exclude_unset=True)
    return update_attendance_settings(db, user.company_id, changes, actor=user)
