from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from uuid import UUID
from portal.core.database import get_db
from portal.core.dependencies import CurrentUser, get_current_user, get_current_admin_user, resolve_employee_id
from portal.core.schemas import ApiResponse, ok
from portal.attendance.schemas import (
    ClockInRequest,
    TimeEntryActionRequest,
    TimeEntryResponse,
    CurrentEntryResponse,
    EmployeeStatsResponse
)
from portal.attendance.service import AttendanceService

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


def _entry(entry) -> TimeEntryResponse:
    return TimeEntryResponse.model_validate(entry)


@router.post("/clock-in", response_model=ApiResponse[TimeEntryResponse])
async def clock_in(
    payload: ClockInRequest,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Open a time entry for the caller, or for an employee named by an admin."""
    employee_id = resolve_employee_id(current_user, payload.employee_id)
    attendance_service = AttendanceService(db)

    entry = attendance_service.clock_in(
        employee_id=employee_id,
        location=payload.location,
        notes=payload.notes,
        ip_address=request.client.host if request.client else None,
        device_info=request.headers.get("user-agent")
    )
    return ok(_entry(entry))


@router.post("/start-break", response_model=ApiResponse[TimeEntryResponse])
async def start_break(
    payload: TimeEntryActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    employee_id = resolve_employee_id(current_user, payload.employee_id)
    return ok(_entry(AttendanceService(db).start_break(employee_id)))


@router.post("/end-break", response_model=ApiResponse[TimeEntryResponse])
async def end_break(
    payload: TimeEntryActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    employee_id = resolve_employee_id(current_user, payload.employee_id)
    return ok(_entry(AttendanceService(db).end_break(employee_id)))


@router.post("/clock-out", response_model=ApiResponse[TimeEntryResponse])
async def clock_out(
    payload: TimeEntryActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    employee_id = resolve_employee_id(current_user, payload.employee_id)
    return ok(_entry(AttendanceService(db).clock_out(employee_id)))


@router.get("/current", response_model=ApiResponse[CurrentEntryResponse])
async def get_current_entry(
    employee_id: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The open entry with its live timers; ``entry`` is null when clocked out."""
    employee_id = resolve_employee_id(current_user, employee_id)
    attendance_service = AttendanceService(db)

    entry = attendance_service.get_current_entry(employee_id)
    if not entry:
        return ok(CurrentEntryResponse(entry=None, elapsed=None))

    return ok(CurrentEntryResponse(
        entry=_entry(entry),
        elapsed=attendance_service.describe_elapsed(entry)
    ))


@router.get("/stats", response_model=ApiResponse[EmployeeStatsResponse])
async def get_employee_stats(
    employee_id: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    employee_id = resolve_employee_id(current_user, employee_id)
    return ok(AttendanceService(db).get_employee_stats(employee_id))


@router.get("", response_model=ApiResponse[List[TimeEntryResponse]])
async def list_time_entries(
    employee_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List time entries. Admins see everyone unless they filter by employee."""
    if not current_user.is_admin:
        employee_id = resolve_employee_id(current_user, employee_id)

    entries = AttendanceService(db).list_time_entries(
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit
    )
    return ok([_entry(entry) for entry in entries])


@router.delete("/{entry_id}", response_model=ApiResponse[dict])
async def delete_time_entry(
    entry_id: UUID,
    current_user: CurrentUser = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    AttendanceService(db).delete_time_entry(entry_id)
    return ok({"id": str(entry_id), "deleted": True})
