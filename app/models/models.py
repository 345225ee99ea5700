import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    Text,
    Index,
    CheckConstraint,
    Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SUPERVISOR = "SUPERVISOR"
    EMPLOYEE = "EMPLOYEE"


MANAGER_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPERVISOR})


class AttendanceStatus(str, enum.Enum):
    PRESENT = "PRESENT"
    LATE = "LATE"
    EARLY_DEPARTURE = "EARLY_DEPARTURE"
    ABSENT_JUSTIFIED = "ABSENT_JUSTIFIED"
    ABSENT_UNJUSTIFIED = "ABSENT_UNJUSTIFIED"
    HALF_DAY = "HALF_DAY"


ABSENCE_STATUSES = frozenset({AttendanceStatus.ABSENT_JUSTIFIED, AttendanceStatus.ABSENT_UNJUSTIFIED})


class AttendanceAction(str, enum.Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    MARK_ABSENT = "mark_absent"
    JUSTIFY_ABSENCE = "justify_absence"
    MANUAL_ENTRY = "manual_entry"


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, native_enum=False, length=20), default=UserRole.EMPLOYEE, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Shift(Base):
    """A scheduled work period. Times are company-local wall-clock instants."""
    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    assignments = relationship("ShiftAssignment", back_populates="shift")

    __table_args__ = (
        Index("idx_shifts_company_start", "company_id", "start_time"),
    )


class ShiftAssignment(Base):
    """One user scheduled to one shift occurrence"""
    __tablename__ = "shift_assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    shift_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    shift = relationship("Shift", back_populates="assignments", lazy="joined")
    user = relationship("User", lazy="joined")
    attendance = relationship("Attendance", back_populates="shift_assignment", uselist=False)


class Attendance(Base):
    """Presence outcome for exactly one shift assignment"""
    __tablename__ = "attendance"

    id: Mapped[uuid.UUID] = uuid_pk()
    # Unique: at most one record per assignment, enforced by the database
    shift_assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shift_assignments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    clock_in_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False))
    clock_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False))
    clock_in_latitude: Mapped[Optional[float]] = mapped_column(Float)
    clock_in_longitude: Mapped[Optional[float]] = mapped_column(Float)
    clock_out_latitude: Mapped[Optional[float]] = mapped_column(Float)
    clock_out_longitude: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[AttendanceStatus] = mapped_column(SAEnum(AttendanceStatus, native_enum=False, length=30), nullable=False)
    minutes_late: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    minutes_early: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    justification: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    clocked_in_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    clocked_out_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    justified_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False))

    shift_assignment = relationship("ShiftAssignment", back_populates="attendance")

    __table_args__ = (
        CheckConstraint("minutes_late >= 0", name="ck_attendance_minutes_late_non_negative"),
        CheckConstraint("minutes_early >= 0", name="ck_attendance_minutes_early_non_negative"),
        CheckConstraint(
            "clock_out_time IS NULL OR (clock_in_time IS NOT NULL AND clock_out_time > clock_in_time)",
            name="ck_attendance_clock_out_after_clock_in",
        ),
        Index("idx_attendance_clock_in", "clock_in_time"),
        Index("idx_attendance_status", "status"),
    )


class AttendanceSettings(Base):
    """Per-company attendance policy"""
    __tablename__ = "attendance_settings"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, unique=True)
    require_gps: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_gps_radius_meters: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    company_latitude: Mapped[Optional[float]] = mapped_column(Float)
    company_longitude: Mapped[Optional[float]] = mapped_column(Float)
    late_tolerance_minutes: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    early_departure_minutes: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    allow_manager_clock_in: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    allow_self_clock_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_on_late: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_on_absent: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    """Append-only audit log for attendance actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # attendance|attendance_settings
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CLOCK_IN|CLOCK_OUT|MARK_ABSENT|JUSTIFY_ABSENCE|MANUAL_ENTRY|UPDATE
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # app|manager|api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_actor', 'actor_id', 'timestamp_utc'),
    )


class Notification(Base):
    """In-app notification records"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # push|email
    template_key: Mapped[Optional[str]] = mapped_column(String(100))
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|sent|failed
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
