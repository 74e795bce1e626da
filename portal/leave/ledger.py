"""
Leave entitlement accounting.

A balance row stores only what an admin granted. What has been used is
always the sum of approved requests for the same (employee, leave type,
year), so approving or deleting a request can never be applied twice.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Any, Union

from sqlalchemy import and_, func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from portal.core.exceptions import ConflictError, ValidationError
from portal.core.service_base import BaseService
from portal.core.events import ChangeEvent, EventBus
from portal.leave.models import LeaveBalance, LeaveRequest, LeaveRequestStatus, LeaveType

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

Days = Union[Decimal, int, float, str]


def to_days(value: Optional[Days]) -> Decimal:
    """Normalise a day amount to a two-decimal Decimal."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWO_PLACES)


def inclusive_day_count(start_date: date, end_date: date) -> int:
    """Number of calendar days from start to end, both ends included."""
    return (end_date - start_date).days + 1


def year_bounds(year: int):
    return date(year, 1, 1), date(year, 12, 31)


@dataclass(frozen=True)
class BalanceSnapshot:
    employee_id: str
    leave_type: str
    year: int
    total_days: Decimal
    used_days: Decimal

    @property
    def remaining_days(self) -> Decimal:
        return self.total_days - self.used_days

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "leave_type": self.leave_type,
            "year": self.year,
            "total_days": self.total_days,
            "used_days": self.used_days,
            "remaining_days": self.remaining_days,
        }


class LeaveLedger(BaseService):
    """Source of truth for total / used / remaining leave days."""

    def __init__(self, db: Session, events: Optional[EventBus] = None):
        super().__init__(db, events)

    def used_days(self, employee_id: str, leave_type: str, year: int) -> Decimal:
        """Sum of days over approved requests starting in ``year``."""
        first_day, last_day = year_bounds(year)
        total = self.db.query(func.coalesce(func.sum(LeaveRequest.days_requested), 0)).filter(
            and_(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.leave_type == leave_type,
                LeaveRequest.status == LeaveRequestStatus.APPROVED,
                LeaveRequest.start_date >= first_day,
                LeaveRequest.start_date <= last_day
            )
        ).scalar()
        return to_days(total)

    def find_balance(self, employee_id: str, leave_type: str, year: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            and_(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
                LeaveBalance.year == year
            )
        ).first()

    def get_balance(self, employee_id: str, leave_type: str, year: int) -> BalanceSnapshot:
        """Current balance; a key that was never granted has zero entitlement."""
        balance = self.find_balance(employee_id, leave_type, year)
        total = to_days(balance.total_days) if balance else to_days(0)

        return BalanceSnapshot(
            employee_id=employee_id,
            leave_type=leave_type,
            year=year,
            total_days=total,
            used_days=self.used_days(employee_id, leave_type, year)
        )

    def can_consume(self, employee_id: str, leave_type: str, year: int, days: Days) -> bool:
        return to_days(days) <= self.get_balance(employee_id, leave_type, year).remaining_days

    def list_balances(self, employee_id: Optional[str] = None, year: Optional[int] = None) -> List[BalanceSnapshot]:
        query = self.db.query(LeaveBalance)
        if employee_id:
            query = query.filter(LeaveBalance.employee_id == employee_id)
        if year:
            query = query.filter(LeaveBalance.year == year)

        rows = query.order_by(LeaveBalance.employee_id, LeaveBalance.year.desc(), LeaveBalance.leave_type).all()
        return [
            BalanceSnapshot(
                employee_id=row.employee_id,
                leave_type=row.leave_type,
                year=row.year,
                total_days=to_days(row.total_days),
                used_days=self.used_days(row.employee_id, row.leave_type, row.year)
            )
            for row in rows
        ]

    def get_leave_type(self, name: str) -> Optional[LeaveType]:
        return self.db.query(LeaveType).filter(LeaveType.name == name).first()

    def require_leave_type(self, name: str) -> LeaveType:
        leave_type = self.get_leave_type(name)
        if not leave_type:
            raise ValidationError(detail=f"Unknown leave type: {name}", field="leave_type", value=name)
        return leave_type

    def grant(self, employee_id: str, leave_type: str, year: int, total_days: Days) -> BalanceSnapshot:
        """
        Set the entitlement for a key, creating the balance if needed.

        Used days are never touched. The total may not drop below what is
        already consumed.
        """
        total = to_days(total_days)
        if total < 0:
            raise ValidationError(detail="Total days cannot be negative", field="total_days", value=str(total))

        self.require_leave_type(leave_type)

        used = self.used_days(employee_id, leave_type, year)
        if total < used:
            raise ValidationError(
                detail=f"Total days cannot be lower than the {used} day(s) already used",
                field="total_days",
                value=str(total),
                error_data={"used_days": str(used)}
            )

        balance = self.find_balance(employee_id, leave_type, year)
        if balance is None:
            balance = LeaveBalance(employee_id=employee_id, leave_type=leave_type, year=year, total_days=total)
            self.db.add(balance)
        else:
            balance.total_days = total

        self.safe_commit("Error granting leave balance", conflict_message="Leave balance was modified concurrently")

        self.log_service_action(
            "grant", "LeaveBalance", str(balance.id),
            {"employee_id": employee_id, "leave_type": leave_type, "year": year, "total_days": str(total)}
        )
        self.events.publish(ChangeEvent(
            "leave_balance.granted", employee_id, str(balance.id),
            {"leave_type": leave_type, "year": year, "total_days": str(total)}
        ))
        return self.get_balance(employee_id, leave_type, year)

    def carry_forward(self, employee_id: str, leave_type: str, from_year: int) -> BalanceSnapshot:
        """Grant next year's entitlement plus whatever is left over from ``from_year``."""
        definition = self.require_leave_type(leave_type)
        if not definition.carry_forward:
            raise ValidationError(
                detail=f"Leave type {leave_type} does not carry forward",
                field="leave_type",
                value=leave_type
            )

        leftover = max(self.get_balance(employee_id, leave_type, from_year).remaining_days, to_days(0))
        return self.grant(employee_id, leave_type, from_year + 1, to_days(definition.max_days_per_year) + leftover)

    def lock_balance(self, employee_id: str, leave_type: str, year: int) -> Optional[LeaveBalance]:
        """Row-lock the balance for the rest of the caller's transaction."""
        return self.db.query(LeaveBalance).filter(
            and_(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
                LeaveBalance.year == year
            )
        ).with_for_update().first()

    def mark_consumed(self, balance: LeaveBalance, when: datetime):
        """
        Touch the balance inside an approval so its version is bumped.

        The flush fails with ConflictError if another approval committed
        against the same balance since it was read.
        """
        balance.last_consumed_at = when
        try:
            self.db.flush()
        except StaleDataError:
            self.safe_rollback()
            logger.warning(f"Leave balance {balance.id} changed during approval")
            raise ConflictError(
                detail="Leave balance was modified concurrently",
                error_data={"employee_id": balance.employee_id, "leave_type": balance.leave_type, "year": balance.year}
            )
