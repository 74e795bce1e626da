import logging
from typing import Callable, Dict, List, Optional, Any
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_, update
from sqlalchemy.exc import IntegrityError

from portal.attendance.models import TimeEntry, TimeEntryStatus
from portal.attendance.state_machine import TimeEntryAction, next_status
from portal.attendance.timing import (
    break_elapsed,
    finalize_hours,
    format_duration,
    utcnow,
    work_elapsed,
)
from portal.core.events import ChangeEvent, EventBus
from portal.core.exceptions import ConflictError
from portal.core.service_base import BaseService

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TimeEntryStatus.ACTIVE, TimeEntryStatus.BREAK)


class AttendanceService(BaseService):
    """Owns the clock-in / break / clock-out lifecycle of time entries."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow, events: Optional[EventBus] = None):
        super().__init__(db, events)
        self.clock = clock

    def get_current_entry(self, employee_id: str) -> Optional[TimeEntry]:
        """Return the employee's open (active or on break) entry, if any."""
        return self.db.query(TimeEntry).filter(
            and_(
                TimeEntry.employee_id == employee_id,
                TimeEntry.status.in_(OPEN_STATUSES)
            )
        ).first()

    def clock_in(
        self,
        employee_id: str,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        ip_address: Optional[str] = None,
        device_info: Optional[str] = None
    ) -> TimeEntry:
        """Open a new time entry for the employee."""
        current = self.get_current_entry(employee_id)
        next_status(current.status if current else None, TimeEntryAction.CLOCK_IN)

        now = self.clock()
        entry = TimeEntry(
            employee_id=employee_id,
            date=now.date(),
            clock_in=now,
            break_duration=0.0,
            status=TimeEntryStatus.ACTIVE,
            location=location,
            notes=notes,
            ip_address=ip_address,
            device_info=device_info
        )

        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError:
            # Another device clocked this employee in between our read and insert
            self.db.rollback()
            logger.warning(f"Concurrent clock-in rejected for employee {employee_id}")
            raise ConflictError(detail="Already clocked in", current_state=TimeEntryStatus.ACTIVE.value)

        self.db.refresh(entry)
        self.log_service_action("clock_in", "TimeEntry", str(entry.id), {"employee_id": employee_id})
        self._publish("time_entry.clocked_in", entry)
        return entry

    def start_break(self, employee_id: str) -> TimeEntry:
        """Put the employee's active entry on break."""
        current = self.get_current_entry(employee_id)
        target = next_status(current.status if current else None, TimeEntryAction.START_BREAK)

        now = self.clock()
        entry = self._apply_transition(
            current,
            expected=TimeEntryStatus.ACTIVE,
            values={"status": target, "break_start": now}
        )

        self.log_service_action("start_break", "TimeEntry", str(entry.id), {"employee_id": employee_id})
        self._publish("time_entry.break_started", entry)
        return entry

    def end_break(self, employee_id: str) -> TimeEntry:
        """Close the current break and fold its length into break_duration."""
        current = self.get_current_entry(employee_id)
        target = next_status(current.status if current else None, TimeEntryAction.END_BREAK)

        now = self.clock()
        seconds = self._open_break_seconds(current, now)
        entry = self._apply_transition(
            current,
            expected=TimeEntryStatus.BREAK,
            values={
                "status": target,
                "break_duration": TimeEntry.break_duration + seconds,
                "break_start": None,
                "break_end": now,
            }
        )

        self.log_service_action(
            "end_break", "TimeEntry", str(entry.id),
            {"employee_id": employee_id, "break_seconds": seconds}
        )
        self._publish("time_entry.break_ended", entry)
        return entry

    def clock_out(self, employee_id: str) -> TimeEntry:
        """Complete the employee's open entry, closing any open break first."""
        current = self.get_current_entry(employee_id)
        target = next_status(current.status if current else None, TimeEntryAction.CLOCK_OUT)

        now = self.clock()
        values: Dict[str, Any] = {"status": target, "clock_out": now, "open_slot": None}

        total_break_seconds = float(current.break_duration or 0)
        if current.status == TimeEntryStatus.BREAK:
            total_break_seconds += self._open_break_seconds(current, now)
            values.update({"break_start": None, "break_end": now})

        values["break_duration"] = total_break_seconds
        values["total_hours"] = finalize_hours(current.clock_in, now, total_break_seconds)

        entry = self._apply_transition(current, expected=current.status, values=values)

        self.log_service_action(
            "clock_out", "TimeEntry", str(entry.id),
            {"employee_id": employee_id, "total_hours": entry.total_hours}
        )
        self._publish("time_entry.clocked_out", entry)
        return entry

    def delete_time_entry(self, entry_id) -> None:
        """Remove an entry outright; statistics are recomputed from rows so nothing else changes."""
        entry = self.get_or_404(TimeEntry, entry_id, "Time entry")
        employee_id = entry.employee_id

        self.db.delete(entry)
        self.safe_commit("Error deleting time entry")

        self.log_service_action("delete", "TimeEntry", str(entry_id), {"employee_id": employee_id})
        self.events.publish(ChangeEvent("time_entry.deleted", employee_id, str(entry_id)))

    def get_time_entry(self, entry_id) -> TimeEntry:
        return self.get_or_404(TimeEntry, entry_id, "Time entry")

    def list_time_entries(
        self,
        employee_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[TimeEntry]:
        """List entries, newest clock-in first."""
        query = self.db.query(TimeEntry)

        if employee_id:
            query = query.filter(TimeEntry.employee_id == employee_id)
        if start_date:
            query = query.filter(TimeEntry.date >= start_date)
        if end_date:
            query = query.filter(TimeEntry.date <= end_date)

        query = query.order_by(TimeEntry.clock_in.desc())
        return self.paginate_query(query, skip, limit).all()

    def describe_elapsed(self, entry: TimeEntry, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Live timers for an entry. Display only; nothing here is persisted."""
        now = now or self.clock()
        worked = work_elapsed(now, entry.clock_in) if entry.is_open else timedelta(0)
        on_break = (
            break_elapsed(now, entry.break_start)
            if entry.status == TimeEntryStatus.BREAK and entry.break_start
            else timedelta(0)
        )

        return {
            "work_elapsed_seconds": worked.total_seconds(),
            "break_elapsed_seconds": on_break.total_seconds(),
            "work_elapsed": format_duration(worked),
            "break_elapsed": format_duration(on_break),
        }

    def get_employee_stats(self, employee_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Dashboard figures, always recomputed from the current rows."""
        from portal.leave.ledger import LeaveLedger
        from portal.leave.models import LeaveRequest, LeaveRequestStatus

        today = today or self.clock().date()
        # Weeks start on Sunday
        start_of_week = today - timedelta(days=(today.weekday() + 1) % 7)

        entries = self.db.query(TimeEntry).filter(
            and_(
                TimeEntry.employee_id == employee_id,
                TimeEntry.date >= start_of_week,
                TimeEntry.date <= today
            )
        ).all()

        hours_this_week = sum(entry.total_hours or 0.0 for entry in entries)
        today_hours = sum(entry.total_hours or 0.0 for entry in entries if entry.date == today)

        balances = LeaveLedger(self.db).list_balances(employee_id=employee_id, year=today.year)
        pending_requests = self.db.query(LeaveRequest).filter(
            and_(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status == LeaveRequestStatus.PENDING
            )
        ).count()

        return {
            "employee_id": employee_id,
            "is_currently_clocked_in": self.get_current_entry(employee_id) is not None,
            "today_hours": round(today_hours, 2),
            "hours_this_week": round(hours_this_week, 2),
            "remaining_leave_days": sum((b.remaining_days for b in balances), 0),
            "pending_leave_requests": pending_requests,
            "leave_balances": [b.to_dict() for b in balances],
        }

    def _open_break_seconds(self, entry: TimeEntry, now: datetime) -> float:
        if not entry.break_start:
            return 0.0
        return break_elapsed(now, entry.break_start).total_seconds()

    def _apply_transition(self, entry: TimeEntry, expected: TimeEntryStatus, values: Dict[str, Any]) -> TimeEntry:
        """
        Compare-and-swap the entry out of ``expected``.

        The UPDATE only matches while the row is still in ``expected`` and at
        the version that was read. A break taken and ended by another device
        in between leaves the status unchanged but moves the version, so the
        stale write shows up as a zero row count.
        """
        statement = (
            update(TimeEntry)
            .where(and_(
                TimeEntry.id == entry.id,
                TimeEntry.status == expected,
                TimeEntry.version == entry.version
            ))
            .values(version=TimeEntry.version + 1, **values)
            .execution_options(synchronize_session=False)
        )

        result = self.db.execute(statement)
        if result.rowcount != 1:
            self.safe_rollback()
            logger.warning(f"Time entry {entry.id} left state {expected.value} before update")
            raise ConflictError(
                detail="Time entry was modified concurrently",
                current_state=expected.value,
                error_data={"time_entry_id": str(entry.id)}
            )

        self.safe_commit("Error updating time entry")
        self.db.refresh(entry)
        return entry

    def _publish(self, event_type: str, entry: TimeEntry):
        self.events.publish(ChangeEvent(
            event_type,
            entry.employee_id,
            str(entry.id),
            {"status": entry.status.value, "total_hours": entry.total_hours}
        ))
