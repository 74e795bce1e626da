from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from uuid import UUID
from portal.payrolls.models import PayrollStatus


class NetPayRequest(BaseModel):
    gross_pay: Decimal
    overtime_pay: Decimal = Decimal("0")
    bonus: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")


class NetPayResponse(BaseModel):
    gross_pay: Decimal
    overtime_pay: Decimal
    bonus: Decimal
    deductions: Decimal
    net_pay: Decimal


class PayrollCreate(BaseModel):
    employee_id: str = Field(..., min_length=1, max_length=64)
    pay_period_start: date
    pay_period_end: date
    gross_pay: Decimal
    deductions: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")
    overtime_pay: Decimal = Decimal("0")
    bonus: Decimal = Decimal("0")
    net_pay: Optional[Decimal] = None  # filled from the formula when omitted
    status: Optional[PayrollStatus] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class PayrollUpdate(BaseModel):
    pay_period_start: Optional[date] = None
    pay_period_end: Optional[date] = None
    gross_pay: Optional[Decimal] = None
    deductions: Optional[Decimal] = None
    overtime_hours: Optional[Decimal] = None
    overtime_pay: Optional[Decimal] = None
    bonus: Optional[Decimal] = None
    net_pay: Optional[Decimal] = None
    status: Optional[PayrollStatus] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class PayrollResponse(BaseModel):
    id: UUID
    employee_id: str
    pay_period_start: date
    pay_period_end: date
    gross_pay: Decimal
    deductions: Decimal
    overtime_hours: Decimal
    overtime_pay: Decimal
    bonus: Decimal
    net_pay: Decimal
    status: PayrollStatus
    currency: str
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
