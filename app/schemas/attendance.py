import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models.models import AttendanceStatus, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class AttendanceActionRequest(CamelModel):
    shift_assignment_id: uuid.UUID
    action: str  # clock_in|clock_out|mark_absent|justify_absence|manual_entry
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    justification: Optional[str] = None
    notes: Optional[str] = None
    clock_in_time: Optional[datetime] = None  # manual_entry only
    clock_out_time: Optional[datetime] = None  # manual_entry only


class UserSummary(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    role: UserRole


class ShiftSummary(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime


class ShiftAssignmentSummary(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    user: UserSummary
    shift: ShiftSummary


class AttendanceRecordResponse(CamelModel):
    id: uuid.UUID
    shift_assignment_id: uuid.UUID
    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None
    clock_in_latitude: Optional[float] = None
    clock_in_longitude: Optional[float] = None
    clock_out_latitude: Optional[float] = None
    clock_out_longitude: Optional[float] = None
    status: AttendanceStatus
    minutes_late: int = 0
    minutes_early: int = 0
    total_minutes: Optional[int] = None
    justification: Optional[str] = None
    notes: Optional[str] = None
    clocked_in_by: Optional[uuid.UUID] = None
    clocked_out_by: Optional[uuid.UUID] = None
    justified_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    shift_assignment: ShiftAssignmentSummary


class AttendanceSettingsResponse(CamelModel):
    require_gps: bool = Field(alias="requireGPS")
    max_gps_radius_meters: int = Field(alias="maxGPSRadiusMeters")
    company_latitude: Optional[float] = None
    company_longitude: Optional[float] = None
    late_tolerance_minutes: int
    early_departure_minutes: int
    allow_manager_clock_in: bool
    allow_self_clock_in: bool
    notify_on_late: bool
    notify_on_absent: bool


class AttendanceSettingsUpdate(CamelModel):
    require_gps: Optional[bool] = Field(default=None, alias="requireGPS")
    max_gps_radius_meters: Optional[int] = Field(default=None, alias="maxGPSRadiusMeters")
    company_latitude: Optional[float] = None
    company_longitude: Optional[float] = None
    late_tolerance_minutes: Optional[int] = None
    early_departure_minutes: Optional[int] = None
    allow_manager_clock_in: Optional[bool] = None
    allow_self_clock_in: Optional[bool] = None
    notify_on_late: Optional[bool] = None
    notify_on_absent: Optional[bool] = None
