from sqlalchemy import Column, String, DateTime, Date, Integer, Numeric, Boolean, Text, Enum, Uuid, UniqueConstraint, Index
from sqlalchemy.sql import func
import enum
from portal.core.database import Base, generate_uuid


class LeaveRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    max_days_per_year = Column(Numeric(5, 2), nullable=False)
    carry_forward = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class LeaveBalance(Base):
    """
    Granted entitlement for one (employee, leave type, year).

    Only ``total_days`` is stored. Used and remaining days are derived from
    approved requests by ``LeaveLedger``.
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type", "year", name="uq_leave_balance_employee_type_year"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    employee_id = Column(String(64), nullable=False, index=True)
    leave_type = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    total_days = Column(Numeric(6, 2), nullable=False, default=0)
    last_consumed_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Every UPDATE is conditional on the version read; a stale writer gets StaleDataError
    __mapper_args__ = {"version_id_col": version}


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_requests_balance_key", "employee_id", "leave_type", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    employee_id = Column(String(64), nullable=False, index=True)
    leave_type = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_requested = Column(Numeric(6, 2), nullable=False)
    reason = Column(Text)
    status = Column(
        Enum(LeaveRequestStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=LeaveRequestStatus.PENDING
    )
    approved_by = Column(String(64))
    approved_at = Column(DateTime(timezone=True))
    admin_notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def year(self) -> int:
        """Requests are charged to the year they start in."""
        return self.start_date.year
