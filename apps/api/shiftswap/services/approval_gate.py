from typing import Optional
from uuid import UUID

from shiftswap.models.swap_request import SwapRequest, SwapStatus
from shiftswap.services.notifications import NotificationEvent
from shiftswap.services.state_machine import SwapRequestStateMachine


class AdminApprovalGate:
    """Authorizes admin callers and forwards to the state machine. Owns no state."""

    def __init__(self, machine: SwapRequestStateMachine):
        self.machine = machine

    def queue(self, admin_id: UUID) -> list[SwapRequest]:
        """Accepted requests waiting for a decision, oldest first."""
        self.machine.require_admin(admin_id)
        return self.machine.repo.list_all(SwapStatus.accepted, oldest_first=True)

    def list_all(self, admin_id: UUID, status: Optional[SwapStatus] = None) -> list[SwapRequest]:
        self.machine.require_admin(admin_id)
        return self.machine.repo.list_all(status)

    def decide(self, swap_id: UUID, admin_id: UUID, approve: bool, admin_notes: Optional[str] = None) -> SwapRequest:
        return self.machine.decide_swap_request(swap_id, admin_id, approve, admin_notes)

    def auto_approve(self, swap_id: UUID, admin_id: UUID) -> SwapRequest:
        return self.machine.auto_approve(swap_id, actor_id=admin_id)

    def counts_by_status(self, admin_id: UUID) -> dict[str, int]:
        """Dashboard tallies for every status, zeros included."""
        counts = {s.value: 0 for s in SwapStatus}
        for swap in self.list_all(admin_id):
            counts[swap.status.value] += 1
        return counts

    def redeliver_notifications(self, admin_id: UUID) -> list[NotificationEvent]:
        """Retry committed notifications whose dispatch failed or was abandoned."""
        self.machine.require_admin(admin_id)
        return self.machine.outbox.redeliver_pending()
