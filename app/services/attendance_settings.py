"""
Attendance policy store.
Reads and updates per-company AttendanceSettings. Companies without a
settings row run on DEFAULT_ATTENDANCE_SETTINGS.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import AttendanceSettings, User
from .audit import create_audit_log, compute_diff
from .errors import ValidationError

logger = structlog.get_logger(__name__)


class AttendancePolicy(BaseModel):
    """Effective attendance policy for one company."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    require_gps: bool = False
    max_gps_radius_meters: int = 100
    company_latitude: Optional[float] = None
    company_longitude: Optional[float] = None
    late_tolerance_minutes: int = 15
    early_departure_minutes: int = 15
    allow_manager_clock_in: bool = True
    allow_self_clock_in: bool = False
    notify_on_late: bool = True
    notify_on_absent: bool = True

    @property
    def company_center(self) -> Optional[Tuple[float, float]]:
        if self.company_latitude is None or self.company_longitude is None:
            return None
        return (self.company_latitude, self.company_longitude)


DEFAULT_ATTENDANCE_SETTINGS = AttendancePolicy()

POLICY_FIELDS = tuple(AttendancePolicy.model_fields.keys())
NULLABLE_FIELDS = {"company_latitude", "company_longitude"}


def get_settings_row(db: Session, company_id) -> Optional[AttendanceSettings]:
    return db.query(AttendanceSettings).filter(AttendanceSettings.company_id == company_id).first()


def get_attendance_settings(db: Session, company_id) -> AttendancePolicy:
    """Persisted policy for the company, or the defaults when none exists."""
    row = get_settings_row(db, company_id)
    if row is None:
        return DEFAULT_ATTENDANCE_SETTINGS
    return AttendancePolicy.model_validate(row)


def validate_policy_changes(current: AttendancePolicy, changes: Dict[str, Any]) -> AttendancePolicy:
    unknown = set(changes) - set(POLICY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

    for key, value in changes.items():
        if value is None and key not in NULLABLE_FIELDS:
            raise ValidationError(f"{key} cannot be null")

    radius = changes.get("max_gps_radius_meters")
    if radius is not None and not (settings.gps_radius_min_m <= radius <= settings.gps_radius_max_m):
        raise ValidationError(
            f"GPS radius must be between {settings.gps_radius_min_m} and {settings.gps_radius_max_m} meters"
        )

    for key in ("late_tolerance_minutes", "early_departure_minutes"):
        value = changes.get(key)
        if value is not None and not (0 <= value <= settings.tolerance_max_min):
            raise ValidationError(f"Tolerance must be between 0 and {settings.tolerance_max_min} minutes")

    merged = current.model_copy(update=changes)

    if (merged.company_latitude is None) != (merged.company_longitude is None):
        raise ValidationError("companyLatitude and companyLongitude must be set together")
    if merged.company_latitude is not None and not (-90 <= merged.company_latitude <= 90):
        raise ValidationError("companyLatitude must be between -90 and 90")
    if merged.company_longitude is not None and not (-180 <= merged.company_longitude <= 180):
        raise ValidationError("companyLongitude must be between -180 and 180")

    return merged


def update_attendance_settings(
    db: Session,
    company_id,
    changes: Dict[str, Any],
    actor: Optional[User] = None,
) -> AttendancePolicy:
    """
    Apply a partial update to the company's settings, creating the row from
    the defaults when it does not exist yet.
    """
    row = get_settings_row(db, company_id)
    current = AttendancePolicy.model_validate(row) if row else DEFAULT_ATTENDANCE_SETTINGS
    updated = validate_policy_changes(current, changes)

    if row is None:
        row = AttendanceSettings(company_id=company_id)
        try:
            with db.begin_nested():
                db.add(row)
                for field in POLICY_FIELDS:
                    setattr(row, field, getattr(updated, field))
        except IntegrityError:
            # Another request created the row first
            row = get_settings_row(db, company_id)

    for field in POLICY_FIELDS:
        setattr(row, field, getattr(updated, field))
    row.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(row)

    logger.info("attendance_settings_updated", company_id=str(company_id), fields=sorted(changes))

    create_audit_log(
        db=db,
        entity_type="attendance_settings",
        entity_id=str(row.id),
        action="UPDATE",
        actor_id=str(actor.id) if actor else None,
        actor_role=actor.role.value if actor else None,
        source="api",
        changes_json=compute_diff(current.model_dump(), updated.model_dump()),
        context={"company_id": str(company_id)},
    )

    return AttendancePolicy.model_validate(row)
