import enum
import uuid

from sqlalchemy import Column, Enum, ForeignKey, Index, Text, Uuid
from sqlalchemy.sql.sqltypes import DateTime

from shiftswap.core.database import Base

from shiftswap.models.employee import Employee  # noqa: F401
from shiftswap.models.schedule_entry import ScheduleEntry, utcnow  # noqa: F401


class SwapStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    auto_approved = "auto-approved"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self not in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({SwapStatus.pending, SwapStatus.accepted})
TERMINAL_STATUSES = frozenset(set(SwapStatus) - ACTIVE_STATUSES)


def _status_column_type(name: str):
    # Stored by value ("auto-approved"); anything else fails on load
    return Enum(
        SwapStatus,
        name=name,
        native_enum=False,
        validate_strings=True,
        length=16,
        values_callable=lambda e: [m.value for m in e],
    )


class SwapRequest(Base):
    __tablename__ = "swap_requests"

    swap_request_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    requester_id = Column(Uuid(as_uuid=True), ForeignKey("employees.employee_id", ondelete="CASCADE"), nullable=False)
    # NULL while an open offer has not been claimed
    recipient_id = Column(Uuid(as_uuid=True), ForeignKey("employees.employee_id", ondelete="CASCADE"), nullable=True)

    offered_shift_id = Column(Uuid(as_uuid=True), ForeignKey("schedule_entries.shift_id", ondelete="CASCADE"), nullable=False)
    requested_shift_id = Column(Uuid(as_uuid=True), ForeignKey("schedule_entries.shift_id", ondelete="CASCADE"), nullable=True)

    status = Column(_status_column_type("swap_status"), nullable=False, default=SwapStatus.pending)

    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    decided_by = Column(Uuid(as_uuid=True), ForeignKey("employees.employee_id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_swap_requests_requester_status", "requester_id", "status"),
        Index("ix_swap_requests_recipient_status", "recipient_id", "status"),
        Index("ix_swap_requests_offered_shift", "offered_shift_id"),
        Index("ix_swap_requests_requested_shift", "requested_shift_id"),
    )

    @property
    def is_targeted(self) -> bool:
        return self.recipient_id is not None

    @property
    def shift_ids(self) -> list:
        return [s for s in (self.offered_shift_id, self.requested_shift_id) if s is not None]

    def is_party(self, employee_id) -> bool:
        return employee_id in (self.requester_id, self.recipient_id)


class SwapRequestHistory(Base):
    """Audit trail: one row per committed status change."""

    __tablename__ = "swap_request_history"

    history_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    swap_request_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("swap_requests.swap_request_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    from_status = Column(_status_column_type("swap_history_from_status"), nullable=True)
    to_status = Column(_status_column_type("swap_history_to_status"), nullable=False)
    actor_id = Column(Uuid(as_uuid=True), nullable=True)  # NULL for system transitions
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ShiftCommitment(Base):
    """Present exactly while a shift is referenced by an active swap request.

    The primary key on shift_id is what makes a second active reference to
    the same shift impossible at the database level.
    """

    __tablename__ = "shift_commitments"

    shift_id = Column(Uuid(as_uuid=True), ForeignKey("schedule_entries.shift_id", ondelete="CASCADE"), primary_key=True)
    swap_request_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("swap_requests.swap_request_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
