from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from uuid import UUID
from portal.attendance.models import TimeEntryStatus


class ClockInRequest(BaseModel):
    employee_id: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class TimeEntryActionRequest(BaseModel):
    employee_id: Optional[str] = None


class TimeEntryResponse(BaseModel):
    id: UUID
    employee_id: str
    date: date
    clock_in: datetime
    clock_out: Optional[datetime]
    break_start: Optional[datetime]
    break_end: Optional[datetime]
    break_duration: float
    status: TimeEntryStatus
    total_hours: Optional[float]
    location: Optional[str]
    notes: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ElapsedResponse(BaseModel):
    work_elapsed_seconds: float
    break_elapsed_seconds: float
    work_elapsed: str
    break_elapsed: str


class CurrentEntryResponse(BaseModel):
    entry: Optional[TimeEntryResponse]
    elapsed: Optional[ElapsedResponse]


class LeaveBalanceSummary(BaseModel):
    employee_id: str
    leave_type: str
    year: int
    total_days: Decimal
    used_days: Decimal
    remaining_days: Decimal


class EmployeeStatsResponse(BaseModel):
    employee_id: str
    is_currently_clocked_in: bool
    today_hours: float
    hours_this_week: float
    remaining_leave_days: Decimal
    pending_leave_requests: int
    leave_balances: List[LeaveBalanceSummary]
