import uuid

from sqlalchemy import Column, ForeignKey, String, Uuid
from sqlalchemy.sql.sqltypes import DateTime

from shiftswap.core.database import Base

from shiftswap.models.schedule_entry import utcnow
from shiftswap.models.swap_request import SwapRequest, SwapStatus, _status_column_type  # noqa: F401


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    type = Column(String, nullable=False, default="swap")
    target_user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)  # NULL = broadcast
    swap_request_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("swap_requests.swap_request_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    new_status = Column(_status_column_type("notification_status"), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    # Set by the worker about to dispatch; stale claims are taken over
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
