from uuid import UUID

from fastapi import APIRouter, Depends, Query
from typing import Optional

from shiftswap.models.employee import Employee, EmployeeRole
from shiftswap.models.swap_request import SwapStatus
from shiftswap.routers.auth import get_current_admin, get_current_employee
from shiftswap.routers.schedule import employee_out, get_schedule_store, shift_out
from shiftswap.routers.swaps import get_state_machine, swap_out
from shiftswap.schemas.schedule import EmployeeCreate, EmployeeOut, ScheduleEntryCreate, ScheduleEntryOut
from shiftswap.schemas.swaps import SwapDecide, SwapRequestOut
from shiftswap.services.approval_gate import AdminApprovalGate
from shiftswap.services.schedule_store import ScheduleStore
from shiftswap.services.state_machine import SwapRequestStateMachine

router = APIRouter()


def get_approval_gate(machine: SwapRequestStateMachine = Depends(get_state_machine)) -> AdminApprovalGate:
    return AdminApprovalGate(machine)


# --- Swap requests ---
@router.get("/swaps", response_model=list[SwapRequestOut])
def list_all_swap_requests(
    status: Optional[SwapStatus] = Query(None),
    current_employee: Employee = Depends(get_current_employee),
    gate: AdminApprovalGate = Depends(get_approval_gate),
):
    """All swap requests, newest first, optionally filtered by status."""
    return [swap_out(r) for r in gate.list_all(current_employee.employee_id, status)]


@router.get("/swaps/queue", response_model=list[SwapRequestOut])
def list_pending_decisions(
    current_employee: Employee = Depends(get_current_employee),
    gate: AdminApprovalGate = Depends(get_approval_gate),
):
    """Accepted requests waiting for an admin decision, oldest first."""
    return [swap_out(r) for r in gate.queue(current_employee.employee_id)]


@router.get("/swaps/summary")
def swap_status_summary(
    current_employee: Employee = Depends(get_current_employee),
    gate: AdminApprovalGate = Depends(get_approval_gate),
):
    return gate.counts_by_status(current_employee.employee_id)


@router.post("/swaps/{swap_id}/decision", response_model=SwapRequestOut)
def decide_swap_request(
    swap_id: UUID,
    payload: SwapDecide,
    current_employee: Employee = Depends(get_current_employee),
    gate: AdminApprovalGate = Depends(get_approval_gate),
):
    swap = gate.decide(
        swap_id,
        current_employee.employee_id,
        approve=payload.decision == "approve",
        admin_notes=payload.admin_notes,
    )
    return swap_out(swap)


@router.post("/swaps/{swap_id}/auto-approve", response_model=SwapRequestOut)
def auto_approve_swap_request(
    swap_id: UUID,
    current_employee: Employee = Depends(get_current_employee),
    gate: AdminApprovalGate = Depends(get_approval_gate),
):
    """Admin shortcut: finalize a pending request without waiting for the recipient."""
    return swap_out(gate.auto_approve(swap_id, current_employee.employee_id))


# --- Notifications ---
@router.post("/notifications/redeliver")
def redeliver_notifications(
    current_employee: Employee = Depends(get_current_employee),
    gate: AdminApprovalGate = Depends(get_approval_gate),
):
    """Retry notifications that were committed but never dispatched."""
    events = gate.redeliver_notifications(current_employee.employee_id)
    return {"redelivered": len(events)}


# --- Registration ---
@router.post("/employees", response_model=EmployeeOut)
def create_employee(
    payload: EmployeeCreate,
    current_admin: Employee = Depends(get_current_admin),
    store: ScheduleStore = Depends(get_schedule_store),
):
    emp = store.add_employee(
        name=payload.name,
        email=str(payload.email),
        role=EmployeeRole(payload.role),
        open_for_swap=payload.open_for_swap,
    )
    return employee_out(emp)


@router.post("/shifts", response_model=ScheduleEntryOut)
def create_shift(
    payload: ScheduleEntryCreate,
    current_admin: Employee = Depends(get_current_admin),
    store: ScheduleStore = Depends(get_schedule_store),
):
    entry = store.add_shift(
        employee_id=payload.employee_id,
        week_number=payload.week_number,
        working_hours=payload.working_hours,
        off_days=payload.off_days,
        open_for_swap=payload.open_for_swap,
    )
    return shift_out(entry)
