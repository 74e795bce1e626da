from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from uuid import UUID
from portal.leave.models import LeaveRequestStatus


class LeaveRequestCreate(BaseModel):
    employee_id: Optional[str] = None
    leave_type: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    reason: Optional[str] = None


class LeaveDecision(BaseModel):
    decision: LeaveRequestStatus
    admin_notes: Optional[str] = None


class LeaveRequestResponse(BaseModel):
    id: UUID
    employee_id: str
    leave_type: str
    start_date: date
    end_date: date
    days_requested: Decimal
    reason: Optional[str]
    status: LeaveRequestStatus
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    admin_notes: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class LeaveBalanceGrant(BaseModel):
    employee_id: str
    leave_type: str
    year: int = Field(..., ge=1900, le=9999)
    total_days: Decimal


class CarryForwardRequest(BaseModel):
    employee_id: str
    leave_type: str
    from_year: int = Field(..., ge=1900, le=9998)


class LeaveBalanceResponse(BaseModel):
    employee_id: str
    leave_type: str
    year: int
    total_days: Decimal
    used_days: Decimal
    remaining_days: Decimal


class LeaveTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str]
    max_days_per_year: Decimal
    carry_forward: bool

    class Config:
        from_attributes = True
