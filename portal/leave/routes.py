from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from portal.core.database import get_db
from portal.core.dependencies import CurrentUser, get_current_user, get_current_admin_user, resolve_employee_id
from portal.core.schemas import ApiResponse, ok
from portal.leave.ledger import LeaveLedger
from portal.leave.models import LeaveRequestStatus
from portal.leave.schemas import (
    LeaveRequestCreate,
    LeaveDecision,
    LeaveRequestResponse,
    LeaveBalanceGrant,
    CarryForwardRequest,
    LeaveBalanceResponse,
    LeaveTypeResponse
)
from portal.leave.service import LeaveService

router = APIRouter(prefix="/leave", tags=["leave"])


def _request(leave_request) -> LeaveRequestResponse:
    return LeaveRequestResponse.model_validate(leave_request)


@router.post("/requests", response_model=ApiResponse[LeaveRequestResponse], status_code=status.HTTP_201_CREATED)
async def submit_leave_request(
    payload: LeaveRequestCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Submit a pending leave request; the balance must already cover it."""
    employee_id = resolve_employee_id(current_user, payload.employee_id)

    leave_request = LeaveService(db).submit(
        employee_id=employee_id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason
    )
    return ok(_request(leave_request))


@router.get("/requests", response_model=ApiResponse[List[LeaveRequestResponse]])
async def list_leave_requests(
    employee_id: Optional[str] = Query(None),
    status: Optional[LeaveRequestStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not current_user.is_admin:
        employee_id = resolve_employee_id(current_user, employee_id)

    requests = LeaveService(db).list_requests(employee_id=employee_id, status=status, skip=skip, limit=limit)
    return ok([_request(r) for r in requests])


@router.get("/requests/{request_id}", response_model=ApiResponse[LeaveRequestResponse])
async def get_leave_request(
    request_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    leave_request = LeaveService(db).get_request(request_id)
    resolve_employee_id(current_user, leave_request.employee_id)
    return ok(_request(leave_request))


@router.post("/requests/{request_id}/finalize", response_model=ApiResponse[LeaveRequestResponse])
async def finalize_leave_request(
    request_id: UUID,
    payload: LeaveDecision,
    current_user: CurrentUser = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Approve or reject a pending request. A request can be finalized only once."""
    leave_request = LeaveService(db).finalize(
        request_id,
        payload.decision,
        admin_notes=payload.admin_notes,
        approved_by=current_user.id
    )
    return ok(_request(leave_request))


@router.delete("/requests/{request_id}", response_model=ApiResponse[dict])
async def delete_leave_request(
    request_id: UUID,
    current_user: CurrentUser = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    LeaveService(db).delete(request_id)
    return ok({"id": str(request_id), "deleted": True})


@router.get("/balances", response_model=ApiResponse[List[LeaveBalanceResponse]])
async def list_leave_balances(
    employee_id: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not current_user.is_admin:
        employee_id = resolve_employee_id(current_user, employee_id)

    balances = LeaveLedger(db).list_balances(employee_id=employee_id, year=year)
    return ok([b.to_dict() for b in balances])


@router.put("/balances", response_model=ApiResponse[LeaveBalanceResponse])
async def grant_leave_balance(
    payload: LeaveBalanceGrant,
    current_user: CurrentUser = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Set the entitlement for an employee, leave type and year."""
    balance = LeaveLedger(db).grant(payload.employee_id, payload.leave_type, payload.year, payload.total_days)
    return ok(balance.to_dict())


@router.post("/balances/carry-forward", response_model=ApiResponse[LeaveBalanceResponse])
async def carry_forward_leave_balance(
    payload: CarryForwardRequest,
    current_user: CurrentUser = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    balance = LeaveLedger(db).carry_forward(payload.employee_id, payload.leave_type, payload.from_year)
    return ok(balance.to_dict())


@router.get("/balances/{employee_id}/{leave_type}/{year}", response_model=ApiResponse[LeaveBalanceResponse])
async def get_leave_balance(
    employee_id: str,
    leave_type: str,
    year: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    employee_id = resolve_employee_id(current_user, employee_id)
    return ok(LeaveLedger(db).get_balance(employee_id, leave_type, year).to_dict())


@router.get("/types", response_model=ApiResponse[List[LeaveTypeResponse]])
async def list_leave_types(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ok([LeaveTypeResponse.model_validate(t) for t in LeaveService(db).list_leave_types()])
