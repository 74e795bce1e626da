from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from portal.core.database import get_db
from portal.core.dependencies import CurrentUser, get_current_user, get_current_admin_user, resolve_employee_id
from portal.core.schemas import ApiResponse, ok
from portal.payrolls.schemas import (
    NetPayRequest,
    NetPayResponse,
    PayrollCreate,
    PayrollUpdate,
    PayrollResponse
)
from portal.payrolls.service import PayrollService

router = APIRouter(prefix="/payroll", tags=["payroll"])


def _record(payroll) -> PayrollResponse:
    return PayrollResponse.model_validate(payroll)


@router.post("/net-pay", response_model=ApiResponse[NetPayResponse])
async def calculate_net_pay(
    payload: NetPayRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Suggested net pay for the given components. Nothing is stored."""
    result = PayrollService(db).compute_net_pay(
        payload.gross_pay,
        payload.overtime_pay,
        payload.bonus,
        payload.deductions
    )
    return ok(result)


@router.post("/records", response_model=ApiResponse[PayrollResponse], status_code=status.HTTP_201_CREATED)
async def create_payroll_record(
    payroll_data: PayrollCreate,
    current_user: CurrentUser = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Create a payroll record; a supplied net pay must match the formula."""
    payroll = PayrollService(db).create_payroll_record(payroll_data.model_dump())
    return ok(_record(payroll))


@router.get("/records", response_model=ApiResponse[List[PayrollResponse]])
async def list_payroll_records(
    employee_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not current_user.is_admin:
        employee_id = resolve_employee_id(current_user, employee_id)

    records = PayrollService(db).get_employee_payrolls(employee_id=employee_id, skip=skip, limit=limit)
    return ok([_record(r) for r in records])


@router.get("/records/{payroll_id}", response_model=ApiResponse[PayrollResponse])
async def get_payroll_record(
    payroll_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    payroll = PayrollService(db).get_payroll(payroll_id)
    resolve_employee_id(current_user, payroll.employee_id)
    return ok(_record(payroll))


@router.patch("/records/{payroll_id}", response_model=ApiResponse[PayrollResponse])
async def update_payroll_record(
    payroll_id: UUID,
    update_data: PayrollUpdate,
    current_user: CurrentUser = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    payroll = PayrollService(db).update_payroll(payroll_id, update_data.model_dump(exclude_unset=True))
    return ok(_record(payroll))
