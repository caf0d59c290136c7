"""
Swap request state machine.

Every change to a swap request goes through one of the named operations
below. Each operation runs as a single unit:

    acquire shift locks (ascending id)  ->  bound the row-lock wait
    ->  re-read rows FOR UPDATE
    ->  status guard + actor guard + ConflictGuard
    ->  status/history/commitments (+ ownership exchange on approval)
    ->  outbox rows  ->  COMMIT  ->  dispatch notifications

Any failure before COMMIT rolls the whole unit back, so a status change
without its ownership exchange (or the reverse) cannot be persisted.
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftswap.core.config import settings
from shiftswap.core.errors import (
    InvalidTransition,
    ShiftAlreadyCommitted,
    SwapError,
    Unauthorized,
    ValidationError,
    translate_storage_errors,
)
from shiftswap.core.locks import ShiftLockRegistry, shift_locks
from shiftswap.models.schedule_entry import ScheduleEntry
from shiftswap.models.swap_request import SwapRequest, SwapStatus
from shiftswap.services.conflict_guard import ConflictGuard
from shiftswap.services.notifications import NotificationDispatcher, NotificationOutbox
from shiftswap.services.policies import AutoApprovalPolicy, get_policy
from shiftswap.services.schedule_store import ScheduleStore
from shiftswap.services.swap_repository import SwapRequestRepository

log = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000


class SwapEvent(str, enum.Enum):
    create = "create"
    accept = "accept"
    decline = "decline"
    cancel = "cancel"
    approve = "approve"
    reject = "reject"
    auto_approve = "auto_approve"


# (from status, event) -> to status. None is "no request yet".
TRANSITIONS: dict[tuple[Optional[SwapStatus], SwapEvent], SwapStatus] = {
    (None, SwapEvent.create): SwapStatus.pending,
    (SwapStatus.pending, SwapEvent.accept): SwapStatus.accepted,
    (SwapStatus.pending, SwapEvent.decline): SwapStatus.declined,
    (SwapStatus.pending, SwapEvent.cancel): SwapStatus.cancelled,
    (SwapStatus.pending, SwapEvent.auto_approve): SwapStatus.auto_approved,
    (SwapStatus.accepted, SwapEvent.approve): SwapStatus.approved,
    (SwapStatus.accepted, SwapEvent.reject): SwapStatus.rejected,
}

# Statuses whose arrival exchanges shift ownership
EXCHANGE_STATUSES = frozenset({SwapStatus.approved, SwapStatus.auto_approved})


def allowed_events(status: Optional[SwapStatus]) -> list[SwapEvent]:
    return [event for (src, event) in TRANSITIONS if src == status]


def next_status(status: Optional[SwapStatus], event: SwapEvent) -> SwapStatus:
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransition(
            f"Cannot {event.value} a swap request that is {status.value if status else 'new'}",
            current_status=status,
            event=event,
            allowed_events=allowed_events(status),
        ) from None


def _clean_notes(notes: Optional[str], field: str) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(
            f"{field} must be at most {MAX_NOTES_LENGTH} characters",
            field=field,
            reason="too_long",
        )
    return notes or None


class SwapRequestStateMachine:
    def __init__(
        self,
        db: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        policy: Optional[AutoApprovalPolicy] = None,
        locks: Optional[ShiftLockRegistry] = None,
        lock_timeout_seconds: Optional[float] = None,
        notify_admins_on_decline: Optional[bool] = None,
    ):
        self.db = db
        self.locks = locks or shift_locks
        self.lock_timeout_seconds = (
            settings.lock_timeout_seconds if lock_timeout_seconds is None else lock_timeout_seconds
        )
        self.notify_admins_on_decline = (
            settings.notify_admins_on_decline if notify_admins_on_decline is None else notify_admins_on_decline
        )
        self.policy = policy or get_policy(settings.auto_approve_policy)

        self.store = ScheduleStore(db, self.lock_timeout_seconds, self.locks)
        self.repo = SwapRequestRepository(db)
        self.guard = ConflictGuard(db)
        self.outbox = NotificationOutbox(db, dispatcher)

    # ========== Transaction boundary ==========
    @contextmanager
    def _critical_section(self, shift_ids: Iterable[Optional[UUID]]):
        shift_ids = [s for s in shift_ids if s is not None]
        with translate_storage_errors():
            with self.locks.hold(shift_ids, timeout=self.lock_timeout_seconds):
                try:
                    # Covers the swap row FOR UPDATE as well as the shift rows
                    self.store.bound_lock_wait()
                    yield
                    self.db.flush()
                    self.db.commit()
                except IntegrityError as e:
                    self.db.rollback()
                    self.outbox.discard()
                    # Another process got the commitment row first
                    shift_id, winner = self.guard.winner_for(shift_ids)
                    if winner is None:
                        raise
                    log.warning("Lost commitment race on shift %s to swap %s", shift_id, winner)
                    raise ShiftAlreadyCommitted(shift_id=shift_id, conflicting_request_id=winner) from e
                except Exception:
                    self.db.rollback()
                    self.outbox.discard()
                    raise
        self.outbox.flush_committed()

    def _apply(self, swap: SwapRequest, event: SwapEvent, actor_id: Optional[UUID], note: Optional[str] = None) -> SwapStatus:
        """Status guard, history row and commitment release for a terminal step."""
        old_status = swap.status
        new_status = next_status(old_status, event)
        self.repo.set_status(swap, new_status, actor_id, note)
        if new_status.is_terminal:
            self.guard.release(swap.swap_request_id)
        log.info(
            "swap %s %s -> %s by %s",
            swap.swap_request_id,
            old_status.value,
            new_status.value,
            actor_id or "system",
        )
        return new_status

    def _exchange(self, swap: SwapRequest, shifts: dict[UUID, ScheduleEntry]) -> None:
        offered = shifts[swap.offered_shift_id]
        requested = shifts[swap.requested_shift_id]
        if offered.employee_id != swap.requester_id or requested.employee_id != swap.recipient_id:
            raise InvalidTransition(
                "Shift ownership changed since the request was made",
                current_status=swap.status,
                reason="ownership_changed",
            )
        self.store.exchange_ownership(offered, requested)

    def _admin_ids(self) -> list[UUID]:
        return [a.employee_id for a in self.store.list_admins()]

    def require_admin(self, admin_id: UUID) -> None:
        admin = self.store.get_employee(admin_id)
        if not admin.is_admin:
            raise Unauthorized("Administrator role required", required_actor="admin", actor_id=admin_id)

    # ========== Operations ==========
    def create_swap_request(
        self,
        requester_id: UUID,
        offered_shift_id: UUID,
        requested_shift_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> SwapRequest:
        """Offer offered_shift_id in exchange for requested_shift_id.

        Without requested_shift_id this is an open offer any other employee
        can claim by accepting it with one of their own shifts.
        """
        notes = _clean_notes(notes, "notes")
        if requested_shift_id is not None and requested_shift_id == offered_shift_id:
            raise ValidationError("Cannot swap a shift for itself", field="requested_shift_id", reason="same_shift")
        self.store.get_employee(requester_id)

        with self._critical_section([offered_shift_id, requested_shift_id]):
            shifts = self.store.lock_shifts([offered_shift_id, requested_shift_id])

            offered = shifts[offered_shift_id]
            if offered.employee_id != requester_id:
                raise Unauthorized(
                    "You can only offer your own shifts",
                    required_actor="offered_shift_owner",
                    actor_id=requester_id,
                )
            if not offered.open_for_swap:
                raise ValidationError(
                    "Offered shift is not open for swap",
                    field="offered_shift_id",
                    reason="shift_not_open",
                )

            recipient_id = None
            if requested_shift_id is not None:
                requested = shifts[requested_shift_id]
                if requested.employee_id == requester_id:
                    raise ValidationError(
                        "Requested shift already belongs to you",
                        field="requested_shift_id",
                        reason="self_owned",
                    )
                if not requested.open_for_swap:
                    raise ValidationError(
                        "Requested shift is not open for swap",
                        field="requested_shift_id",
                        reason="shift_not_open",
                    )
                recipient_id = requested.employee_id

            self.guard.ensure_available([offered_shift_id, requested_shift_id])

            swap = SwapRequest(
                requester_id=requester_id,
                recipient_id=recipient_id,
                offered_shift_id=offered_shift_id,
                requested_shift_id=requested_shift_id,
                status=next_status(None, SwapEvent.create),
                notes=notes,
            )
            self.repo.add(swap, requester_id, notes)
            self.guard.commit(swap.swap_request_id, swap.shift_ids)
            # recipient_id None broadcasts the open offer
            self.outbox.stage(swap.swap_request_id, swap.status, [recipient_id])
            swap_id = swap.swap_request_id

        log.info("swap %s created by %s (%s)", swap_id, requester_id, "targeted" if recipient_id else "open offer")

        if recipient_id is not None and self.policy.name != "never":
            return self._maybe_auto_approve(swap_id)
        return self.repo.get(swap_id)

    def respond_to_swap_request(
        self,
        swap_id: UUID,
        recipient_id: UUID,
        accept: bool,
        requested_shift_id: Optional[UUID] = None,
    ) -> SwapRequest:
        """Recipient accepts or declines.

        Accepting an open offer claims it: the caller becomes the recipient
        and requested_shift_id (one of the caller's open shifts) becomes the
        other side of the swap.
        """
        event = SwapEvent.accept if accept else SwapEvent.decline
        self.store.get_employee(recipient_id)
        swap = self.repo.get(swap_id)

        claiming = accept and swap.recipient_id is None
        if claiming and requested_shift_id is None:
            raise ValidationError(
                "Choose one of your shifts to claim an open offer",
                field="requested_shift_id",
                reason="required_for_open_offer",
            )

        lock_ids = swap.shift_ids + ([requested_shift_id] if claiming else [])
        with self._critical_section(lock_ids):
            swap = self.repo.get(swap_id, for_update=True)

            if claiming and swap.recipient_id is None and swap.status == SwapStatus.pending:
                if recipient_id == swap.requester_id:
                    raise Unauthorized(
                        "You cannot claim your own offer",
                        required_actor="other_employee",
                        actor_id=recipient_id,
                    )
                new_status = next_status(swap.status, event)
                shifts = self.store.lock_shifts([swap.offered_shift_id, requested_shift_id])
                claimed = shifts[requested_shift_id]
                if claimed.employee_id != recipient_id:
                    raise Unauthorized(
                        "You can only offer your own shifts",
                        required_actor="requested_shift_owner",
                        actor_id=recipient_id,
                    )
                if not claimed.open_for_swap:
                    raise ValidationError(
                        "Requested shift is not open for swap",
                        field="requested_shift_id",
                        reason="shift_not_open",
                    )
                self.guard.ensure_available([requested_shift_id], swap.swap_request_id)
                swap.recipient_id = recipient_id
                swap.requested_shift_id = requested_shift_id
                self.guard.commit(swap.swap_request_id, [requested_shift_id])
            else:
                if claiming and swap.recipient_id != recipient_id:
                    raise InvalidTransition(
                        "This offer is no longer open",
                        current_status=swap.status,
                        event=event,
                        allowed_events=allowed_events(swap.status),
                        reason="already_claimed" if swap.recipient_id else "closed",
                    )
                if swap.recipient_id is None or swap.recipient_id != recipient_id:
                    raise Unauthorized(
                        "Only the recipient can respond to this swap request",
                        required_actor="recipient",
                        actor_id=recipient_id,
                    )
                new_status = next_status(swap.status, event)
                if accept:
                    if requested_shift_id is not None and requested_shift_id != swap.requested_shift_id:
                        raise ValidationError(
                            "requested_shift_id does not match this swap request",
                            field="requested_shift_id",
                            reason="mismatch",
                        )
                    self.store.lock_shifts(swap.shift_ids)
                    self.guard.ensure_available(swap.shift_ids, swap.swap_request_id)

            self._apply(swap, event, recipient_id)

            if new_status == SwapStatus.accepted:
                targets = [swap.requester_id] + self._admin_ids()
            else:
                targets = [swap.requester_id]
                if self.notify_admins_on_decline:
                    targets += self._admin_ids()
            self.outbox.stage(swap.swap_request_id, new_status, targets)

        return self.repo.get(swap_id)

    def cancel_swap_request(self, swap_id: UUID, requester_id: UUID) -> SwapRequest:
        """Requester withdraws; only while still pending."""
        swap = self.repo.get(swap_id)
        with self._critical_section(swap.shift_ids):
            swap = self.repo.get(swap_id, for_update=True)
            if swap.requester_id != requester_id:
                raise Unauthorized(
                    "Only the requester can cancel this swap request",
                    required_actor="requester",
                    actor_id=requester_id,
                )
            new_status = self._apply(swap, SwapEvent.cancel, requester_id)
            # An unclaimed open offer has nobody to tell; it just leaves GET /swaps/open
            if swap.recipient_id is not None:
                self.outbox.stage(swap.swap_request_id, new_status, [swap.recipient_id])

        return self.repo.get(swap_id)

    def decide_swap_request(
        self,
        swap_id: UUID,
        admin_id: UUID,
        approve: bool,
        admin_notes: Optional[str] = None,
    ) -> SwapRequest:
        """Admin final decision on an accepted request.

        Approval exchanges shift ownership in the same transaction as the
        status change.
        """
        admin_notes = _clean_notes(admin_notes, "admin_notes")
        self.require_admin(admin_id)
        event = SwapEvent.approve if approve else SwapEvent.reject

        swap = self.repo.get(swap_id)
        with self._critical_section(swap.shift_ids):
            swap = self.repo.get(swap_id, for_update=True)
            next_status(swap.status, event)
            shifts = self.store.lock_shifts(swap.shift_ids)

            if TRANSITIONS[(swap.status, event)] in EXCHANGE_STATUSES:
                self._exchange(swap, shifts)
            swap.admin_notes = admin_notes
            swap.decided_by = admin_id
            new_status = self._apply(swap, event, admin_id, admin_notes)

            self.outbox.stage(swap.swap_request_id, new_status, [swap.requester_id, swap.recipient_id])

        return self.repo.get(swap_id)

    def auto_approve(self, swap_id: UUID, actor_id: Optional[UUID] = None) -> SwapRequest:
        """Finalize a pending request without the recipient/admin steps.

        With actor_id None this is the system path and the configured policy
        must agree. An admin actor uses it as a shortcut and the policy is
        not consulted.
        """
        if actor_id is not None:
            self.require_admin(actor_id)

        swap = self.repo.get(swap_id)
        with self._critical_section(swap.shift_ids):
            swap = self.repo.get(swap_id, for_update=True)
            next_status(swap.status, SwapEvent.auto_approve)
            if swap.requested_shift_id is None:
                raise InvalidTransition(
                    "An open offer has no counterpart shift to exchange yet",
                    current_status=swap.status,
                    event=SwapEvent.auto_approve,
                    reason="untargeted",
                )
            shifts = self.store.lock_shifts(swap.shift_ids)
            if actor_id is None and not self.policy.should_auto_approve(
                swap, shifts[swap.offered_shift_id], shifts[swap.requested_shift_id]
            ):
                raise InvalidTransition(
                    f"Auto-approval policy '{self.policy.name}' does not allow this swap",
                    current_status=swap.status,
                    event=SwapEvent.auto_approve,
                    reason="policy_declined",
                )

            self._exchange(swap, shifts)
            swap.decided_by = actor_id
            new_status = self._apply(swap, SwapEvent.auto_approve, actor_id)
            self.outbox.stage(swap.swap_request_id, new_status, [swap.requester_id, swap.recipient_id])

        return self.repo.get(swap_id)

    def _maybe_auto_approve(self, swap_id: UUID) -> SwapRequest:
        swap = self.repo.get(swap_id)
        offered = self.store.get_shift(swap.offered_shift_id)
        requested = self.store.get_shift(swap.requested_shift_id)
        if not self.policy.should_auto_approve(swap, offered, requested):
            return swap
        try:
            return self.auto_approve(swap_id)
        except SwapError as e:
            # The pending request is committed either way; report its real state
            log.warning("Auto-approval of swap %s skipped: %s", swap_id, e.message)
            return self.repo.get(swap_id)

    # ========== Reads ==========
    def get_for_party(self, swap_id: UUID, caller_id: UUID) -> SwapRequest:
        swap = self.repo.get(swap_id)
        if swap.is_party(caller_id):
            return swap
        if swap.recipient_id is None and swap.status == SwapStatus.pending:
            return swap  # open offers are public
        caller = self.store.get_employee(caller_id)
        if not caller.is_admin:
            raise Unauthorized("You are not part of this swap request", required_actor="party_or_admin", actor_id=caller_id)
        return swap
