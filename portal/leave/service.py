import logging
from typing import Callable, List, Optional
from datetime import date, datetime
from sqlalchemy.orm import Session
from sqlalchemy import and_, update

from portal.attendance.timing import utcnow
from portal.core.events import ChangeEvent, EventBus
from portal.core.exceptions import ConflictError, InsufficientBalanceError, ValidationError
from portal.core.service_base import BaseService
from portal.leave.ledger import LeaveLedger, inclusive_day_count, to_days
from portal.leave.models import LeaveRequest, LeaveRequestStatus, LeaveType

logger = logging.getLogger(__name__)

DEFAULT_LEAVE_TYPES = [
    {"name": "Casual leave", "description": "General purpose leave", "max_days_per_year": 12, "carry_forward": False},
    {"name": "Sick leave", "description": "Illness or recovery", "max_days_per_year": 10, "carry_forward": True},
    {"name": "Medical leave", "description": "Medical procedures", "max_days_per_year": 7, "carry_forward": False},
    {"name": "Marriage leave", "description": "Marriage ceremony", "max_days_per_year": 7, "carry_forward": False},
    {"name": "Halfday leave", "description": "Half-day absence", "max_days_per_year": 24, "carry_forward": False},
    {"name": "Shortday leave", "description": "Short absence", "max_days_per_year": 24, "carry_forward": False},
    {"name": "Menstruation leave", "description": "Period leave", "max_days_per_year": 12, "carry_forward": False},
    {"name": "Work from home", "description": "WFH days", "max_days_per_year": 60, "carry_forward": False},
]


def seed_leave_types(db: Session) -> int:
    """Insert the default leave types when the table is empty."""
    if db.query(LeaveType).count():
        return 0

    for definition in DEFAULT_LEAVE_TYPES:
        db.add(LeaveType(**definition))
    db.commit()

    logger.info(f"Seeded {len(DEFAULT_LEAVE_TYPES)} default leave types")
    return len(DEFAULT_LEAVE_TYPES)


class LeaveService(BaseService):
    """Submits and finalizes leave requests against the ledger."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow, events: Optional[EventBus] = None):
        super().__init__(db, events)
        self.clock = clock
        self.ledger = LeaveLedger(db, self.events)

    def submit(
        self,
        employee_id: str,
        leave_type: str,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None
    ) -> LeaveRequest:
        """Create a pending request after checking dates and entitlement."""
        if end_date < start_date:
            raise ValidationError(
                detail="End date cannot be before start date",
                field="end_date",
                value=end_date.isoformat(),
                error_data={"start_date": start_date.isoformat()}
            )

        self.ledger.require_leave_type(leave_type)

        days = to_days(inclusive_day_count(start_date, end_date))
        year = start_date.year
        balance = self.ledger.get_balance(employee_id, leave_type, year)
        if days > balance.remaining_days:
            raise InsufficientBalanceError(days, balance.remaining_days, leave_type, year)

        request = LeaveRequest(
            employee_id=employee_id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            days_requested=days,
            reason=reason or "",
            status=LeaveRequestStatus.PENDING
        )
        self.db.add(request)
        self.safe_commit("Error creating leave request")
        self.db.refresh(request)

        self.log_service_action(
            "submit", "LeaveRequest", str(request.id),
            {"employee_id": employee_id, "leave_type": leave_type, "days_requested": str(days)}
        )
        self._publish("leave_request.submitted", request)
        return request

    def finalize(
        self,
        request_id,
        decision,
        admin_notes: Optional[str] = None,
        approved_by: Optional[str] = None
    ) -> LeaveRequest:
        """
        Move a pending request to approved or rejected, exactly once.

        A request that already left pending is refused before the ledger is
        read. Approvals re-check the balance under a row lock; if it no longer
        covers the request the request stays pending.
        """
        try:
            decision = LeaveRequestStatus(decision)
        except ValueError:
            raise ValidationError(detail="Decision must be approved or rejected", field="decision", value=decision)
        if decision == LeaveRequestStatus.PENDING:
            raise ValidationError(detail="Decision must be approved or rejected", field="decision", value=decision.value)

        request = self.get_request(request_id)
        if request.status != LeaveRequestStatus.PENDING:
            raise ConflictError(
                detail="Leave request already finalized",
                current_state=request.status.value,
                error_data={"leave_request_id": str(request.id)}
            )

        now = self.clock()
        values = {
            "status": decision,
            "approved_by": approved_by,
            "admin_notes": admin_notes,
        }
        if decision == LeaveRequestStatus.APPROVED:
            values["approved_at"] = now

        # Single-assignment guard: only one writer can move the row out of pending,
        # and the loser stops here without touching the ledger
        result = self.db.execute(
            update(LeaveRequest)
            .where(and_(LeaveRequest.id == request.id, LeaveRequest.status == LeaveRequestStatus.PENDING))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.safe_rollback()
            raise ConflictError(
                detail="Leave request already finalized",
                error_data={"leave_request_id": str(request.id)}
            )

        if decision == LeaveRequestStatus.APPROVED:
            # Rolling back on a short balance also puts the request back to pending
            self._reserve_balance(request, now)

        self.safe_commit("Error finalizing leave request", conflict_message="Leave balance was modified concurrently")
        self.db.refresh(request)

        self.log_service_action(
            "finalize", "LeaveRequest", str(request.id),
            {"decision": decision.value, "approved_by": approved_by}
        )
        self._publish(f"leave_request.{decision.value}", request)
        return request

    def delete(self, request_id) -> None:
        """
        Delete a request in any state.

        Used days are derived from approved requests, so removing an approved
        one hands its days back to the balance.
        """
        request = self.get_request(request_id)
        employee_id = request.employee_id
        restored = request.days_requested if request.status == LeaveRequestStatus.APPROVED else 0

        self.db.delete(request)
        self.safe_commit("Error deleting leave request")

        self.log_service_action(
            "delete", "LeaveRequest", str(request_id),
            {"employee_id": employee_id, "restored_days": str(restored)}
        )
        self.events.publish(ChangeEvent(
            "leave_request.deleted", employee_id, str(request_id), {"restored_days": str(restored)}
        ))

    def get_request(self, request_id) -> LeaveRequest:
        return self.get_or_404(LeaveRequest, request_id, "Leave request")

    def list_requests(
        self,
        employee_id: Optional[str] = None,
        status: Optional[LeaveRequestStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest)
        if employee_id:
            query = query.filter(LeaveRequest.employee_id == employee_id)
        if status:
            query = query.filter(LeaveRequest.status == status)

        query = query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.start_date.desc())
        return self.paginate_query(query, skip, limit).all()

    def list_leave_types(self) -> List[LeaveType]:
        return self.db.query(LeaveType).order_by(LeaveType.name).all()

    def _reserve_balance(self, request: LeaveRequest, now: datetime):
        """Lock and re-check the balance after the request was written as approved."""
        balance_row = self.ledger.lock_balance(request.employee_id, request.leave_type, request.year)
        # Used days already include this request
        snapshot = self.ledger.get_balance(request.employee_id, request.leave_type, request.year)
        days = to_days(request.days_requested)

        if balance_row is None or snapshot.remaining_days < 0:
            # Release the lock; the request goes back to pending for a new decision
            self.safe_rollback()
            raise InsufficientBalanceError(
                days, snapshot.remaining_days + days, request.leave_type, request.year,
                error_data={"leave_request_id": str(request.id)}
            )

        self.ledger.mark_consumed(balance_row, now)

    def _publish(self, event_type: str, request: LeaveRequest):
        self.events.publish(ChangeEvent(
            event_type,
            request.employee_id,
            str(request.id),
            {
                "status": request.status.value,
                "leave_type": request.leave_type,
                "days_requested": str(request.days_requested),
            }
        ))
