from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from shiftswap.core.config import settings
from shiftswap.core.database import get_db
from shiftswap.models.employee import Employee
from shiftswap.models.schedule_entry import ScheduleEntry
from shiftswap.routers.auth import get_current_employee
from shiftswap.schemas.schedule import EmployeeOut, OpenForSwapUpdate, ScheduleEntryOut
from shiftswap.services.schedule_store import ScheduleStore

router = APIRouter()


def get_schedule_store(db: Session = Depends(get_db)) -> ScheduleStore:
    return ScheduleStore(db, settings.lock_timeout_seconds)


def shift_out(e: ScheduleEntry) -> ScheduleEntryOut:
    return ScheduleEntryOut(
        shift_id=str(e.shift_id),
        employee_id=str(e.employee_id),
        week_number=e.week_number,
        working_hours=e.working_hours,
        off_days=list(e.off_days or []),
        open_for_swap=e.open_for_swap,
        created_at=e.created_at,
    )


def employee_out(e: Employee) -> EmployeeOut:
    return EmployeeOut(
        employee_id=str(e.employee_id),
        name=e.name,
        email=e.email,
        role=e.role.value,
        open_for_swap=e.open_for_swap,
        is_active=e.is_active,
    )


@router.get("/mine", response_model=list[ScheduleEntryOut])
def get_my_schedule(
    current_employee: Employee = Depends(get_current_employee),
    store: ScheduleStore = Depends(get_schedule_store),
):
    """The current employee's shifts, ordered by week."""
    return [shift_out(e) for e in store.list_shifts_for_employee(current_employee.employee_id)]


@router.get("/swappable", response_model=list[ScheduleEntryOut])
def list_swappable_shifts(
    week: Optional[int] = Query(None, ge=1, le=53),
    current_employee: Employee = Depends(get_current_employee),
    store: ScheduleStore = Depends(get_schedule_store),
):
    """
    Other employees' shifts that are open for swap and not already part of
    an active swap request. Ordered by week, then creation time.
    """
    entries = store.list_swappable(week, exclude_owner_id=current_employee.employee_id)
    return [shift_out(e) for e in entries]


@router.put("/shifts/{shift_id}/open-for-swap", response_model=ScheduleEntryOut)
def set_shift_open_for_swap(
    shift_id: UUID,
    payload: OpenForSwapUpdate,
    current_employee: Employee = Depends(get_current_employee),
    store: ScheduleStore = Depends(get_schedule_store),
):
    entry = store.set_open_for_swap(shift_id, current_employee.employee_id, payload.open_for_swap)
    return shift_out(entry)


@router.put("/open-for-swap", response_model=EmployeeOut)
def set_my_open_for_swap(
    payload: OpenForSwapUpdate,
    current_employee: Employee = Depends(get_current_employee),
    store: ScheduleStore = Depends(get_schedule_store),
):
    """Default open-for-swap flag for shifts registered from now on."""
    emp = store.set_employee_open_for_swap(
        current_employee.employee_id,
        current_employee.employee_id,
        payload.open_for_swap,
    )
    return employee_out(emp)
