import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, JSON, Text, Uuid
from sqlalchemy.sql.sqltypes import DateTime

from shiftswap.core.database import Base

from shiftswap.models.employee import Employee  # noqa: F401


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleEntry(Base):
    """One employee's shift for one week."""

    __tablename__ = "schedule_entries"

    shift_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    employee_id = Column(Uuid(as_uuid=True), ForeignKey("employees.employee_id", ondelete="CASCADE"), nullable=False, index=True)

    week_number = Column(Integer, nullable=False)
    working_hours = Column(Text, nullable=False)  # e.g. "09:00-17:00"
    off_days = Column(JSON, nullable=False, default=list)  # sorted weekday names

    open_for_swap = Column(Boolean, nullable=False, default=False)

    # Python-side timestamps keep microsecond ordering on every backend
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_schedule_entries_swappable", "open_for_swap", "week_number", "created_at"),
    )
