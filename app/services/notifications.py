"""
Notification service.
Writes notification records for attendance events; delivery happens elsewhere.
"""
from typing import Optional, Dict, List

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import (
    Attendance,
    AttendanceStatus,
    Notification,
    ShiftAssignment,
    Shift,
    User,
    MANAGER_ROLES,
)

logger = structlog.get_logger(__name__)


def channel_enabled(channel: str) -> bool:
    if channel == "push":
        return settings.enable_push
    if channel == "email":
        return settings.enable_email
    return False


def create_notification(
    db: Session,
    user_id,
    channel: str,
    template_key: Optional[str] = None,
    payload_json: Optional[Dict] = None,
) -> Optional[Notification]:
    """
    Create a notification record.
    Only creates if the channel is enabled.

    Args:
        db: Database session
        user_id: Recipient user ID
        channel: Notification channel (push|email)
        template_key: Template identifier
        payload_json: Notification payload

    Returns:
        Notification object if created, None if skipped
    """
    if not channel_enabled(channel):
        return None

    notification = Notification(
        user_id=user_id,
        channel=channel,
        template_key=template_key,
        payload_json=payload_json,
        status="pending",
    )
    db.add(notification)
    return notification


def company_managers(db: Session, company_id) -> List[User]:
    return (
        db.query(User)
        .filter(
            User.company_id == company_id,
            User.is_active.is_(True),
            User.role.in_([r for r in MANAGER_ROLES]),
        )
        .order_by(User.name.asc())
        .all()
    )


def send_attendance_notification(db: Session, record: Attendance, assignment: ShiftAssignment) -> int:
    """
    Tell the company's managers about a late arrival or an absence.

    Returns the number of notifications created.
    """
    shift: Shift = assignment.shift
    if record.status == AttendanceStatus.LATE:
        template_key = "attendance_late"
    else:
        template_key = "attendance_absent"

    payload = {
        "type": template_key,
        "attendance": {
            "id": str(record.id),
            "shift_assignment_id": str(assignment.id),
            "user_id": str(assignment.user_id),
            "user_name": assignment.user.name if assignment.user else None,
            "status": record.status.value,
            "minutes_late": record.minutes_late,
            "shift_title": shift.title,
            "shift_start": shift.start_time.isoformat(),
        },
    }

    created = 0
    for manager in company_managers(db, shift.company_id):
        if manager.id == assignment.user_id:
            continue
        if create_notification(db, manager.id, "push", template_key, payload):
            created += 1
        if create_notification(db, manager.id, "email", template_key, payload):
            created += 1
    db.commit()

    logger.info(
        "attendance_notification_queued",
        attendance_id=str(record.id),
        template_key=template_key,
        recipients=created,
    )
    return created
