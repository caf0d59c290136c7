from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftswap.core.errors import NotFound
from shiftswap.models.swap_request import SwapRequest, SwapRequestHistory, SwapStatus


class SwapRequestRepository:
    """Swap request rows and their status history. Rows are never deleted."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, swap_request_id: UUID, for_update: bool = False) -> SwapRequest:
        if for_update:
            stmt = (
                select(SwapRequest)
                .where(SwapRequest.swap_request_id == swap_request_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            swap = self.db.execute(stmt).scalar_one_or_none()
        else:
            swap = self.db.get(SwapRequest, swap_request_id)
        if swap is None:
            raise NotFound("SwapRequest", swap_request_id)
        return swap

    def add(self, swap: SwapRequest, actor_id: Optional[UUID], note: Optional[str] = None) -> SwapRequest:
        self.db.add(swap)
        self.db.flush()
        self.record(swap, None, swap.status, actor_id, note)
        return swap

    def set_status(
        self,
        swap: SwapRequest,
        new_status: SwapStatus,
        actor_id: Optional[UUID],
        note: Optional[str] = None,
    ) -> None:
        old_status = swap.status
        swap.status = new_status
        self.record(swap, old_status, new_status, actor_id, note)

    def record(self, swap, from_status, to_status, actor_id, note=None) -> None:
        self.db.add(
            SwapRequestHistory(
                swap_request_id=swap.swap_request_id,
                from_status=from_status,
                to_status=to_status,
                actor_id=actor_id,
                note=note,
            )
        )

    def history(self, swap_request_id: UUID) -> list[SwapRequestHistory]:
        stmt = (
            select(SwapRequestHistory)
            .where(SwapRequestHistory.swap_request_id == swap_request_id)
            .order_by(SwapRequestHistory.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_sent(self, user_id: UUID) -> list[SwapRequest]:
        stmt = select(SwapRequest).where(SwapRequest.requester_id == user_id)
        return list(self.db.execute(stmt.order_by(SwapRequest.created_at.desc())).scalars().all())

    def list_received(self, user_id: UUID) -> list[SwapRequest]:
        stmt = select(SwapRequest).where(SwapRequest.recipient_id == user_id)
        return list(self.db.execute(stmt.order_by(SwapRequest.created_at.desc())).scalars().all())

    def list_for_user(self, user_id: UUID) -> dict[str, list[SwapRequest]]:
        return {"sent": self.list_sent(user_id), "received": self.list_received(user_id)}

    def list_all(self, status: Optional[SwapStatus] = None, oldest_first: bool = False) -> list[SwapRequest]:
        stmt = select(SwapRequest)
        if status is not None:
            stmt = stmt.where(SwapRequest.status == status)
        order = SwapRequest.created_at.asc() if oldest_first else SwapRequest.created_at.desc()
        return list(self.db.execute(stmt.order_by(order)).scalars().all())

    def list_open_offers(self, exclude_requester_id: Optional[UUID] = None) -> list[SwapRequest]:
        """Untargeted pending offers anyone else may claim."""
        stmt = select(SwapRequest).where(
            SwapRequest.status == SwapStatus.pending,
            SwapRequest.recipient_id.is_(None),
        )
        if exclude_requester_id is not None:
            stmt = stmt.where(SwapRequest.requester_id != exclude_requester_id)
        return list(self.db.execute(stmt.order_by(SwapRequest.created_at)).scalars().all())
