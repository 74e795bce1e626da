from sqlalchemy import Column, String, DateTime, Date, Float, Integer, Text, Enum, Uuid, UniqueConstraint, Index
from sqlalchemy.sql import func
import enum
from portal.core.database import Base, generate_uuid

# Value of ``open_slot`` while an entry is active or on break
OPEN_SLOT = "open"


class TimeEntryStatus(str, enum.Enum):
    ACTIVE = "active"
    BREAK = "break"
    COMPLETED = "completed"


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        # NULLs never collide, so completed entries are unconstrained
        UniqueConstraint("employee_id", "open_slot", name="uq_time_entries_one_open_per_employee"),
        Index("ix_time_entries_employee_status", "employee_id", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    employee_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    clock_in = Column(DateTime(timezone=True), nullable=False)
    clock_out = Column(DateTime(timezone=True))
    break_start = Column(DateTime(timezone=True))
    break_end = Column(DateTime(timezone=True))
    break_duration = Column(Float, nullable=False, default=0.0)  # accumulated seconds
    status = Column(Enum(TimeEntryStatus, values_callable=lambda e: [m.value for m in e]), nullable=False, default=TimeEntryStatus.ACTIVE)
    total_hours = Column(Float)  # set only on clock-out
    open_slot = Column(String(8), default=OPEN_SLOT)
    location = Column(String(255))
    notes = Column(Text)
    ip_address = Column(String(64))
    device_info = Column(String(500))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Bumped by every transition, so a write based on a stale read never matches
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_open(self) -> bool:
        return self.status in (TimeEntryStatus.ACTIVE, TimeEntryStatus.BREAK)
