"""
Swap notifications.

Events are written to the ``notifications`` table inside the same
transaction as the status change they describe, then handed to the
dispatcher once that transaction has committed. A worker claims a row
with a conditional UPDATE before dispatching it, so the committing worker
and ``redeliver_pending`` never both send the same row. A failed dispatch
releases the claim; a claim older than ``notification_claim_seconds`` is
presumed lost and taken over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional, Protocol
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from shiftswap.core.config import settings
from shiftswap.models.notification import Notification
from shiftswap.models.schedule_entry import utcnow
from shiftswap.models.swap_request import SwapStatus

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    target_user_id: Optional[UUID]  # None = broadcast
    swap_request_id: UUID
    new_status: SwapStatus
    notification_id: Optional[UUID] = None

    def as_dict(self) -> dict:
        return {
            "type": self.type,
            "targetUserId": str(self.target_user_id) if self.target_user_id else None,
            "swapRequestId": str(self.swap_request_id),
            "newStatus": self.new_status.value,
        }


class NotificationDispatcher(Protocol):
    def dispatch(self, event: NotificationEvent) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: delivery is someone else's job, we only log."""

    def dispatch(self, event: NotificationEvent) -> None:
        log.info("notify %s", event.as_dict())


class RecordingDispatcher:
    """Keeps every dispatched event in memory (tests, local tooling)."""

    def __init__(self):
        self.events: list[NotificationEvent] = []

    def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)


class NotificationOutbox:
    def __init__(
        self,
        db: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        claim_seconds: Optional[float] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.claim_seconds = settings.notification_claim_seconds if claim_seconds is None else claim_seconds
        self._staged: list[Notification] = []

    def stage(self, swap_request_id: UUID, new_status: SwapStatus, targets: Iterable[Optional[UUID]]) -> None:
        """Add one outbox row per distinct target to the current transaction."""
        seen = set()
        for target in targets:
            if target in seen:
                continue
            seen.add(target)
            row = Notification(
                type="swap",
                target_user_id=target,
                swap_request_id=swap_request_id,
                new_status=new_status,
            )
            self.db.add(row)
            self._staged.append(row)

    def discard(self) -> None:
        self._staged = []

    def flush_committed(self) -> list[NotificationEvent]:
        """Dispatch rows staged by a transaction that has just committed."""
        staged, self._staged = self._staged, []
        return self._deliver(staged)

    def _claimable(self):
        stale = utcnow() - timedelta(seconds=self.claim_seconds)
        return (
            Notification.dispatched_at.is_(None),
            or_(Notification.claimed_at.is_(None), Notification.claimed_at < stale),
        )

    def redeliver_pending(self) -> list[NotificationEvent]:
        """Dispatch committed rows nobody delivered: failed sends and stale claims."""
        stmt = select(Notification).where(*self._claimable()).order_by(Notification.created_at)
        return self._deliver(self.db.execute(stmt).scalars().all())

    def _set(self, notification_id: UUID, *criteria, **values) -> bool:
        result = self.db.execute(
            update(Notification)
            .where(Notification.notification_id == notification_id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def _deliver(self, rows) -> list[NotificationEvent]:
        # Read everything up front; each claim commits and expires the rows
        events = [
            NotificationEvent(
                type=row.type,
                target_user_id=row.target_user_id,
                swap_request_id=row.swap_request_id,
                new_status=row.new_status,
                notification_id=row.notification_id,
            )
            for row in rows
        ]

        delivered = []
        for event in events:
            nid = event.notification_id
            # Only the worker whose UPDATE matched may dispatch this row
            if not self._set(nid, *self._claimable(), claimed_at=utcnow()):
                log.debug("Notification %s already claimed elsewhere", nid)
                continue
            try:
                self.dispatcher.dispatch(event)
            except Exception:
                # Committed already; release the claim for redelivery
                log.exception("Dispatch failed for notification %s", nid)
                self._set(nid, Notification.dispatched_at.is_(None), claimed_at=None)
                continue
            self._set(nid, dispatched_at=utcnow())
            delivered.append(event)
        return delivered

    def list_for_user(self, user_id: UUID, limit: int = 100) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(or_(Notification.target_user_id == user_id, Notification.target_user_id.is_(None)))
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())
