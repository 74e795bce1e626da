from sqlalchemy import Column, String, DateTime, Date, Numeric, Enum, Uuid
from sqlalchemy.sql import func
import enum
from portal.core.database import Base, generate_uuid


class PayrollStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"


class PayrollRecord(Base):
    __tablename__ = "payroll_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    employee_id = Column(String(64), nullable=False, index=True)
    pay_period_start = Column(Date, nullable=False)
    pay_period_end = Column(Date, nullable=False)
    gross_pay = Column(Numeric(12, 2), nullable=False)
    deductions = Column(Numeric(12, 2), nullable=False, default=0)
    overtime_hours = Column(Numeric(8, 2), nullable=False, default=0)
    overtime_pay = Column(Numeric(12, 2), nullable=False, default=0)
    bonus = Column(Numeric(12, 2), nullable=False, default=0)
    net_pay = Column(Numeric(12, 2), nullable=False)  # always gross + overtime_pay + bonus - deductions
    status = Column(
        Enum(PayrollStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PayrollStatus.PENDING
    )
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
