import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from shiftswap.core.errors import ShiftAlreadyCommitted
from shiftswap.models.swap_request import ACTIVE_STATUSES, ShiftCommitment, SwapRequest

log = logging.getLogger(__name__)


class ConflictGuard:
    """At most one active swap request may reference any shift.

    Checked again inside the critical section right before commit, because
    the list the caller picked from may already be stale.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_competitor(self, shift_id: UUID, swap_request_id: Optional[UUID] = None) -> Optional[UUID]:
        """Id of another active request referencing shift_id, if any."""
        committed = self.db.execute(
            select(ShiftCommitment.swap_request_id).where(ShiftCommitment.shift_id == shift_id)
        ).scalar_one_or_none()
        if committed is not None and committed != swap_request_id:
            return committed

        # Commitments are the fast path; the request table is the source of truth
        stmt = (
            select(SwapRequest.swap_request_id)
            .where(
                (SwapRequest.offered_shift_id == shift_id) | (SwapRequest.requested_shift_id == shift_id),
                SwapRequest.status.in_(sorted(ACTIVE_STATUSES)),
            )
            .order_by(SwapRequest.created_at)
        )
        if swap_request_id is not None:
            stmt = stmt.where(SwapRequest.swap_request_id != swap_request_id)
        return self.db.execute(stmt.limit(1)).scalar_one_or_none()

    def ensure_available(self, shift_ids: Iterable[UUID], swap_request_id: Optional[UUID] = None) -> None:
        for shift_id in sorted({s for s in shift_ids if s is not None}, key=str):
            competitor = self.find_competitor(shift_id, swap_request_id)
            if competitor is not None:
                log.warning("Shift %s already committed to swap %s", shift_id, competitor)
                raise ShiftAlreadyCommitted(shift_id=shift_id, conflicting_request_id=competitor)

    def commit(self, swap_request_id: UUID, shift_ids: Iterable[UUID]) -> None:
        for shift_id in shift_ids:
            if shift_id is not None:
                self.db.add(ShiftCommitment(shift_id=shift_id, swap_request_id=swap_request_id))

    def release(self, swap_request_id: UUID) -> None:
        self.db.execute(
            delete(ShiftCommitment)
            .where(ShiftCommitment.swap_request_id == swap_request_id)
            .execution_options(synchronize_session="fetch")
        )

    def winner_for(self, shift_ids: Iterable[UUID]) -> tuple[Optional[UUID], Optional[UUID]]:
        """After a lost commitment insert: (shift_id, winning request id)."""
        for shift_id in sorted({s for s in shift_ids if s is not None}, key=str):
            competitor = self.find_competitor(shift_id)
            if competitor is not None:
                return shift_id, competitor
        return None, None
