"""
Clock event processing.

Turns an attendance action against a shift assignment into the next state of
its single Attendance record. Timing is always computed against an explicit
`now` so callers (and tests) control the clock.

Writes are mutually exclusive per assignment: records are created through a
get-or-create guarded by the unique constraint on shift_assignment_id, and
clock-in/clock-out are compare-and-swap updates. A request that loses a race
gets AlreadyClockedIn / AlreadyClockedOut instead of overwriting.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import (
    ABSENCE_STATUSES,
    Attendance,
    AttendanceAction,
    AttendanceStatus,
    ShiftAssignment,
    User,
)
from .attendance_settings import AttendancePolicy, get_attendance_settings
from .audit import create_audit_log, compute_diff
from .errors import (
    AlreadyClockedIn,
    AlreadyClockedOut,
    AttendanceError,
    ConflictError,
    InternalError,
    InvalidRange,
    NotClockedIn,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from .geofence import validate_location
from .notifications import send_attendance_notification
from .permissions import get_user_role, is_manager, is_subject
from .shift_assignments import get_shift_assignment
from .time_rules import local_now, minutes_early, minutes_late, to_local_naive, whole_minutes

logger = structlog.get_logger(__name__)

SELF_SERVICE_ACTIONS = frozenset({AttendanceAction.CLOCK_IN, AttendanceAction.CLOCK_OUT})
MANAGER_ONLY_ACTIONS = frozenset({
    AttendanceAction.MARK_ABSENT,
    AttendanceAction.JUSTIFY_ABSENCE,
    AttendanceAction.MANUAL_ENTRY,
})

AUDITED_FIELDS = (
    "clock_in_time",
    "clock_out_time",
    "clock_in_latitude",
    "clock_in_longitude",
    "clock_out_latitude",
    "clock_out_longitude",
    "status",
    "minutes_late",
    "minutes_early",
    "total_minutes",
    "justification",
    "notes",
    "clocked_in_by",
    "clocked_out_by",
    "justified_by",
)

Notifier = Callable[[Session, Attendance, ShiftAssignment], object]


@dataclass
class ClockEvent:
    """One attendance action as submitted by a caller."""

    action: AttendanceAction
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    justification: Optional[str] = None
    notes: Optional[str] = None
    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None

    @property
    def location(self) -> Optional[Tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


@dataclass
class ActionContext:
    db: Session
    assignment: ShiftAssignment
    policy: AttendancePolicy
    actor: User
    is_self: bool
    event: ClockEvent
    now: datetime

    @property
    def actor_ref(self):
        """Actor id to store in *_by columns; None when the subject acted on themself."""
        return None if self.is_self else self.actor.id


def parse_action(value) -> AttendanceAction:
    if isinstance(value, AttendanceAction):
        return value
    try:
        return AttendanceAction(value)
    except ValueError:
        raise ValidationError("Invalid action")


def build_clock_event(
    action,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    justification: Optional[str] = None,
    notes: Optional[str] = None,
    clock_in_time: Optional[datetime] = None,
    clock_out_time: Optional[datetime] = None,
) -> ClockEvent:
    """
    Validate the shape of a request before anything is loaded.
    Manual entries must carry an ordered clock-in/clock-out pair whoever sends them.
    """
    event = ClockEvent(
        action=parse_action(action),
        latitude=latitude,
        longitude=longitude,
        justification=justification or None,
        notes=notes or None,
        clock_in_time=to_local_naive(clock_in_time) if clock_in_time else None,
        clock_out_time=to_local_naive(clock_out_time) if clock_out_time else None,
    )
    if event.action == AttendanceAction.MANUAL_ENTRY:
        if event.clock_in_time is None or event.clock_out_time is None:
            raise ValidationError("Clock-in and clock-out times are required")
        if event.clock_out_time <= event.clock_in_time:
            raise InvalidRange()
    return event


def check_permissions(actor: User, assignment: ShiftAssignment, policy: AttendancePolicy, action: AttendanceAction) -> bool:
    """
    Apply the permission guards and return whether the actor is the subject.

    clock_in/clock_out stay open to the subject even when self clock-in is
    disabled; every other self-initiated action needs allow_self_clock_in.
    """
    manager = is_manager(actor)
    is_self = is_subject(actor, assignment)

    if not manager and not is_self:
        raise PermissionDenied("Not allowed to record attendance for another employee")

    if is_self and not policy.allow_self_clock_in and action not in SELF_SERVICE_ACTIONS:
        raise PermissionDenied("Self-service attendance is not allowed by the company")

    if action in MANAGER_ONLY_ACTIONS and not manager:
        raise PermissionDenied("Only managers can perform this action")

    return is_self


def get_attendance(db: Session, assignment_id) -> Optional[Attendance]:
    return db.query(Attendance).filter(Attendance.shift_assignment_id == assignment_id).first()


def get_or_create_attendance(db: Session, assignment_id, values: Dict) -> Tuple[Attendance, bool]:
    """
    Return (record, created). The insert runs in a SAVEPOINT; when the unique
    constraint rejects it, the concurrently created row is returned instead.
    """
    existing = get_attendance(db, assignment_id)
    if existing is not None:
        return existing, False

    record = Attendance(shift_assignment_id=assignment_id, **values)
    try:
        with db.begin_nested():
            db.add(record)
    except IntegrityError:
        existing = get_attendance(db, assignment_id)
        if existing is None:
            raise
        return existing, False
    return record, True


def compare_and_set(db: Session, record: Attendance, values: Dict, *conditions) -> bool:
    """UPDATE the record only while `conditions` still hold. Returns False when no row matched."""
    result = db.execute(
        update(Attendance)
        .where(Attendance.id == record.id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return False
    db.expire(record)
    return True


def upsert_attendance(db: Session, assignment_id, values: Dict) -> Attendance:
    record, created = get_or_create_attendance(db, assignment_id, values)
    if not created:
        for key, value in values.items():
            setattr(record, key, value)
        db.flush()
    return record


def snapshot(record: Optional[Attendance]) -> Dict:
    if record is None:
        return {}
    return {field: getattr(record, field) for field in AUDITED_FIELDS}


def with_notes(values: Dict, notes: Optional[str]) -> Dict:
    """Notes only overwrite what is stored when the caller sent some."""
    if notes:
        values["notes"] = notes
    return values


def _clock_in(ctx: ActionContext) -> Attendance:
    existing = get_attendance(ctx.db, ctx.assignment.id)
    if existing is not None and existing.clock_in_time is not None:
        raise AlreadyClockedIn()

    location = ctx.event.location
    validate_location(ctx.policy, location)

    late = minutes_late(ctx.assignment.shift.start_time, ctx.now)
    is_late = late > ctx.policy.late_tolerance_minutes
    values = with_notes({
        "clock_in_time": ctx.now,
        "clock_in_latitude": ctx.event.latitude,
        "clock_in_longitude": ctx.event.longitude,
        "minutes_late": late if is_late else 0,
        "status": AttendanceStatus.LATE if is_late else AttendanceStatus.PRESENT,
        "clocked_in_by": ctx.actor_ref,
        "updated_at": ctx.now,
    }, ctx.event.notes)

    record, created = get_or_create_attendance(ctx.db, ctx.assignment.id, values)
    if created:
        return record

    # Existing record without a clock-in (an absence, usually): claim it atomically
    if not compare_and_set(ctx.db, record, values, Attendance.clock_in_time.is_(None)):
        raise AlreadyClockedIn()
    return record


def _clock_out(ctx: ActionContext) -> Attendance:
    record = get_attendance(ctx.db, ctx.assignment.id)
    if record is None or record.clock_in_time is None:
        raise NotClockedIn()
    if record.clock_out_time is not None:
        raise AlreadyClockedOut()

    validate_location(ctx.policy, ctx.event.location)

    if ctx.now <= record.clock_in_time:
        raise InvalidRange("Clock-out must be after clock-in")

    early = minutes_early(ctx.assignment.shift.end_time, ctx.now)
    is_early = early > ctx.policy.early_departure_minutes

    # A LATE arrival is never downgraded to EARLY_DEPARTURE
    current_status = record.status
    new_status = current_status
    if is_early and current_status == AttendanceStatus.PRESENT:
        new_status = AttendanceStatus.EARLY_DEPARTURE

    values = with_notes({
        "clock_out_time": ctx.now,
        "clock_out_latitude": ctx.event.latitude,
        "clock_out_longitude": ctx.event.longitude,
        "minutes_early": early if is_early else 0,
        "total_minutes": whole_minutes(ctx.now, record.clock_in_time),
        "status": new_status,
        "clocked_out_by": ctx.actor_ref,
        "updated_at": ctx.now,
    }, ctx.event.notes)

    swapped = compare_and_set(
        ctx.db,
        record,
        values,
        Attendance.clock_out_time.is_(None),
        Attendance.clock_in_time == record.clock_in_time,
        Attendance.status == current_status,
    )
    if not swapped:
        ctx.db.expire(record)
        if record.clock_out_time is not None:
            raise AlreadyClockedOut()
        raise ConflictError("Attendance record changed while clocking out, please retry")
    return record


def _mark_absent(ctx: ActionContext) -> Attendance:
    justification = ctx.event.justification
    values = with_notes({
        "status": AttendanceStatus.ABSENT_JUSTIFIED if justification else AttendanceStatus.ABSENT_UNJUSTIFIED,
        "justification": justification,
        "justified_by": ctx.actor.id,
        "updated_at": ctx.now,
    }, ctx.event.notes)
    return upsert_attendance(ctx.db, ctx.assignment.id, values)


def _justify_absence(ctx: ActionContext) -> Attendance:
    record = get_attendance(ctx.db, ctx.assignment.id)
    if record is None:
        raise NotFoundError("Attendance record not found")

    record.status = AttendanceStatus.ABSENT_JUSTIFIED
    if ctx.event.justification:
        record.justification = ctx.event.justification
    record.justified_by = ctx.actor.id
    record.updated_at = ctx.now
    if ctx.event.notes:
        record.notes = ctx.event.notes
    ctx.db.flush()
    return record


def _manual_entry(ctx: ActionContext) -> Attendance:
    clock_in = ctx.event.clock_in_time
    clock_out = ctx.event.clock_out_time
    shift = ctx.assignment.shift

    late = minutes_late(shift.start_time, clock_in)
    is_late = late > ctx.policy.late_tolerance_minutes
    early = minutes_early(shift.end_time, clock_out)
    is_early = early > ctx.policy.early_departure_minutes

    # Late takes precedence over early
    if is_late:
        status = AttendanceStatus.LATE
    elif is_early:
        status = AttendanceStatus.EARLY_DEPARTURE
    else:
        status = AttendanceStatus.PRESENT

    values = with_notes({
        "clock_in_time": clock_in,
        "clock_out_time": clock_out,
        "status": status,
        "minutes_late": late if is_late else 0,
        "minutes_early": early if is_early else 0,
        "total_minutes": whole_minutes(clock_out, clock_in),
        "clocked_in_by": ctx.actor_ref,
        "clocked_out_by": ctx.actor_ref,
        "updated_at": ctx.now,
    }, ctx.event.notes)
    return upsert_attendance(ctx.db, ctx.assignment.id, values)


HANDLERS: Dict[AttendanceAction, Callable[[ActionContext], Attendance]] = {
    AttendanceAction.CLOCK_IN: _clock_in,
    AttendanceAction.CLOCK_OUT: _clock_out,
    AttendanceAction.MARK_ABSENT: _mark_absent,
    AttendanceAction.JUSTIFY_ABSENCE: _justify_absence,
    AttendanceAction.MANUAL_ENTRY: _manual_entry,
}


def should_notify(policy: AttendancePolicy, before_status, record: Attendance) -> bool:
    if record.status == before_status:
        return False
    if record.status == AttendanceStatus.LATE:
        return policy.notify_on_late
    if record.status in ABSENCE_STATUSES:
        return policy.notify_on_absent
    return False


def notify_safely(notifier: Notifier, db: Session, record: Attendance, assignment: ShiftAssignment) -> None:
    """Notification failures are logged and never undo the attendance write."""
    try:
        notifier(db, record, assignment)
    except Exception:
        db.rollback()
        logger.warning(
            "attendance_notification_failed",
            attendance_id=str(record.id),
            assignment_id=str(assignment.id),
            exc_info=True,
        )


def submit_attendance_action(
    db: Session,
    shift_assignment_id,
    event: ClockEvent,
    actor: User,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = send_attendance_notification,
) -> Attendance:
    """
    Apply one attendance action for a shift assignment and return the record.

    The record write and its audit entry commit together. Domain errors
    propagate unchanged; persistence failures are logged with the assignment,
    action and actor and surface as InternalError.
    """
    now = to_local_naive(now) if now else local_now()
    action = event.action
    log = logger.bind(assignment_id=str(shift_assignment_id), action=action.value, actor_id=str(actor.id))

    try:
        policy = get_attendance_settings(db, actor.company_id)
        assignment = get_shift_assignment(db, shift_assignment_id, actor.company_id)
        is_self = check_permissions(actor, assignment, policy, action)

        before = get_attendance(db, assignment.id)
        before_state = snapshot(before)
        before_status = before.status if before else None

        ctx = ActionContext(
            db=db,
            assignment=assignment,
            policy=policy,
            actor=actor,
            is_self=is_self,
            event=event,
            now=now,
        )
        record = HANDLERS[action](ctx)
        db.flush()
        db.refresh(record)

        create_audit_log(
            db=db,
            entity_type="attendance",
            entity_id=str(record.id),
            action=action.value.upper(),
            actor_id=str(actor.id),
            actor_role=get_user_role(actor),
            source="app" if is_self else "manager",
            changes_json=compute_diff(before_state, snapshot(record)),
            context={
                "shift_assignment_id": str(assignment.id),
                "user_id": str(assignment.user_id),
                "latitude": event.latitude,
                "longitude": event.longitude,
            },
        )
        db.refresh(record)
    except AttendanceError as exc:
        db.rollback()
        log.info("attendance_action_rejected", error=exc.message, status_code=exc.status_code)
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        log.error("attendance_action_failed", exc_info=True)
        raise InternalError() from exc

    log.info(
        "attendance_action_applied",
        attendance_id=str(record.id),
        status=record.status.value,
        minutes_late=record.minutes_late,
        minutes_early=record.minutes_early,
        total_minutes=record.total_minutes,
    )

    if notifier is not None and should_notify(policy, before_status, record):
        notify_safely(notifier, db, record, assignment)

    return record
