from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shiftswap.core.database import get_db
from shiftswap.models.employee import Employee
from shiftswap.models.swap_request import SwapRequest
from shiftswap.routers.auth import get_current_employee
from shiftswap.schemas.swaps import (
    MySwapsOut,
    NotificationOut,
    SwapCreate,
    SwapHistoryOut,
    SwapRequestOut,
    SwapRespond,
)
from shiftswap.services.notifications import LoggingDispatcher, NotificationDispatcher
from shiftswap.services.state_machine import SwapRequestStateMachine

router = APIRouter()

_dispatcher = LoggingDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def get_state_machine(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SwapRequestStateMachine:
    return SwapRequestStateMachine(db, dispatcher=dispatcher)


def _str(v):
    return str(v) if v is not None else None


def swap_out(r: SwapRequest, history=None) -> SwapRequestOut:
    return SwapRequestOut(
        swap_request_id=str(r.swap_request_id),
        requester_id=str(r.requester_id),
        recipient_id=_str(r.recipient_id),
        offered_shift_id=str(r.offered_shift_id),
        requested_shift_id=_str(r.requested_shift_id),
        status=r.status,
        notes=r.notes,
        admin_notes=r.admin_notes,
        decided_by=_str(r.decided_by),
        created_at=r.created_at,
        updated_at=r.updated_at,
        history=None
        if history is None
        else [
            SwapHistoryOut(
                from_status=h.from_status,
                to_status=h.to_status,
                actor_id=_str(h.actor_id),
                note=h.note,
                created_at=h.created_at,
            )
            for h in history
        ],
    )


@router.post("", response_model=SwapRequestOut)
def create_swap_request(
    payload: SwapCreate,
    current_employee: Employee = Depends(get_current_employee),
    machine: SwapRequestStateMachine = Depends(get_state_machine),
):
    """Offer one of your shifts, either for a specific shift or as an open offer."""
    swap = machine.create_swap_request(
        requester_id=current_employee.employee_id,
        offered_shift_id=payload.offered_shift_id,
        requested_shift_id=payload.requested_shift_id,
        notes=payload.notes,
    )
    return swap_out(swap)


@router.get("/mine", response_model=MySwapsOut)
def list_my_swap_requests(
    current_employee: Employee = Depends(get_current_employee),
    machine: SwapRequestStateMachine = Depends(get_state_machine),
):
    mine = machine.repo.list_for_user(current_employee.employee_id)
    return MySwapsOut(
        sent=[swap_out(r) for r in mine["sent"]],
        received=[swap_out(r) for r in mine["received"]],
    )


@router.get("/open", response_model=list[SwapRequestOut])
def list_open_offers(
    current_employee: Employee = Depends(get_current_employee),
    machine: SwapRequestStateMachine = Depends(get_state_machine),
):
    """Untargeted offers from other employees that can still be claimed."""
    return [swap_out(r) for r in machine.repo.list_open_offers(current_employee.employee_id)]


@router.get("/notifications", response_model=list[NotificationOut])
def list_my_notifications(
    current_employee: Employee = Depends(get_current_employee),
    machine: SwapRequestStateMachine = Depends(get_state_machine),
):
    rows = machine.outbox.list_for_user(current_employee.employee_id)
    return [
        NotificationOut(
            notification_id=str(n.notification_id),
            type=n.type,
            target_user_id=_str(n.target_user_id),
            swap_request_id=str(n.swap_request_id),
            new_status=n.new_status,
            created_at=n.created_at,
            dispatched_at=n.dispatched_at,
        )
        for n in rows
    ]


@router.get("/{swap_id}", response_model=SwapRequestOut)
def get_swap_request(
    swap_id: UUID,
    current_employee: Employee = Depends(get_current_employee),
    machine: SwapRequestStateMachine = Depends(get_state_machine),
):
    swap = machine.get_for_party(swap_id, current_employee.employee_id)
    return swap_out(swap, history=machine.repo.history(swap_id))


@router.post("/{swap_id}/respond", response_model=SwapRequestOut)
def respond_to_swap_request(
    swap_id: UUID,
    payload: SwapRespond,
    current_employee: Employee = Depends(get_current_employee),
    machine: SwapRequestStateMachine = Depends(get_state_machine),
):
    swap = machine.respond_to_swap_request(
        swap_id,
        recipient_id=current_employee.employee_id,
        accept=payload.response == "accept",
        requested_shift_id=payload.requested_shift_id,
    )
    return swap_out(swap)


@router.post("/{swap_id}/cancel", response_model=SwapRequestOut)
def cancel_swap_request(
    swap_id: UUID,
    current_employee: Employee = Depends(get_current_employee),
    machine: SwapRequestStateMachine = Depends(get_state_machine),
):
    return swap_out(machine.cancel_swap_request(swap_id, current_employee.employee_id))
