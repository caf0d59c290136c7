"""
Schedule store: authoritative shift ownership and open-for-swap flags.

Everything that reads or changes who owns a shift goes through here. Row
locking for the swap critical section lives here too, so the state machine
never issues raw locking SQL itself.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from shiftswap.core.errors import Conflict, NotFound, Unauthorized, ValidationError, translate_storage_errors
from shiftswap.core.locks import ShiftLockRegistry, shift_locks
from shiftswap.models.employee import Employee, EmployeeRole
from shiftswap.models.schedule_entry import ScheduleEntry
from shiftswap.models.swap_request import ShiftCommitment

log = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _normalize_off_days(off_days: Optional[Iterable[str]]) -> list[str]:
    days = set()
    for d in off_days or []:
        key = str(d).strip().lower()
        if key not in WEEKDAYS:
            raise ValidationError(f"Unknown weekday: {d}", field="off_days", reason="unknown_weekday")
        days.add(key)
    return sorted(days, key=WEEKDAYS.index)


class ScheduleStore:
    def __init__(self, db: Session, lock_timeout_seconds: float = 5.0, locks: Optional[ShiftLockRegistry] = None):
        self.db = db
        self.lock_timeout_seconds = lock_timeout_seconds
        self.locks = locks or shift_locks

    # ========== Employees ==========
    def get_employee(self, employee_id: UUID) -> Employee:
        emp = self.db.get(Employee, employee_id)
        if emp is None or not emp.is_active:
            raise NotFound("Employee", employee_id)
        return emp

    def list_admins(self) -> list[Employee]:
        stmt = select(Employee).where(Employee.role == EmployeeRole.admin, Employee.is_active.is_(True))
        return list(self.db.execute(stmt.order_by(Employee.created_at)).scalars().all())

    def add_employee(
        self,
        name: str,
        email: str,
        role: EmployeeRole = EmployeeRole.employee,
        open_for_swap: bool = False,
    ) -> Employee:
        existing = self.db.execute(select(Employee).where(Employee.email == email.lower())).scalar_one_or_none()
        if existing:
            raise ValidationError("Employee with this email already exists", field="email", reason="duplicate")

        emp = Employee(name=name, email=email.lower(), role=role, open_for_swap=open_for_swap, is_active=True)
        self.db.add(emp)
        self.db.commit()
        self.db.refresh(emp)
        return emp

    def set_employee_open_for_swap(self, employee_id: UUID, caller_id: UUID, flag: bool) -> Employee:
        if caller_id != employee_id:
            raise Unauthorized("Only the employee can change their own swap preference", required_actor="self", actor_id=caller_id)
        emp = self.get_employee(employee_id)
        emp.open_for_swap = flag
        self.db.commit()
        self.db.refresh(emp)
        return emp

    # ========== Shifts ==========
    def add_shift(
        self,
        employee_id: UUID,
        week_number: int,
        working_hours: str,
        off_days: Optional[Iterable[str]] = None,
        open_for_swap: Optional[bool] = None,
    ) -> ScheduleEntry:
        emp = self.get_employee(employee_id)
        if not 1 <= week_number <= 53:
            raise ValidationError("week_number must be between 1 and 53", field="week_number", reason="out_of_range")
        if not working_hours or not working_hours.strip():
            raise ValidationError("working_hours is required", field="working_hours", reason="missing")

        entry = ScheduleEntry(
            employee_id=emp.employee_id,
            week_number=week_number,
            working_hours=working_hours.strip(),
            off_days=_normalize_off_days(off_days),
            open_for_swap=emp.open_for_swap if open_for_swap is None else open_for_swap,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def get_shift(self, shift_id: UUID) -> ScheduleEntry:
        entry = self.db.get(ScheduleEntry, shift_id)
        if entry is None:
            raise NotFound("ScheduleEntry", shift_id)
        return entry

    def list_shifts_for_employee(self, employee_id: UUID) -> list[ScheduleEntry]:
        stmt = (
            select(ScheduleEntry)
            .where(ScheduleEntry.employee_id == employee_id)
            .order_by(ScheduleEntry.week_number, ScheduleEntry.created_at, ScheduleEntry.shift_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def bound_lock_wait(self) -> None:
        """Cap every row-lock wait for the rest of the current transaction.

        Call before the first SELECT ... FOR UPDATE of the transaction. A
        lock that cannot be had in time surfaces as OperationalError.
        """
        if self.db.get_bind().dialect.name != "postgresql":
            return
        ms = max(1, int(self.lock_timeout_seconds * 1000))
        self.db.execute(text(f"SET LOCAL lock_timeout = {ms}"))

    def lock_shifts(self, shift_ids: Sequence[UUID]) -> dict[UUID, ScheduleEntry]:
        """SELECT ... FOR UPDATE the given shifts, ascending id order.

        Must be called inside the transaction that will commit the change,
        after bound_lock_wait(). Raises NotFound for any id that does not exist.
        """
        ids = sorted({s for s in shift_ids if s is not None}, key=str)
        if not ids:
            return {}

        stmt = (
            select(ScheduleEntry)
            .where(ScheduleEntry.shift_id.in_(ids))
            .order_by(ScheduleEntry.shift_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = {e.shift_id: e for e in self.db.execute(stmt).scalars().all()}
        for shift_id in ids:
            if shift_id not in rows:
                raise NotFound("ScheduleEntry", shift_id)
        return rows

    def exchange_ownership(self, offered: ScheduleEntry, requested: ScheduleEntry) -> None:
        """Swap the owners of two locked shifts and close both for swapping."""
        offered.employee_id, requested.employee_id = requested.employee_id, offered.employee_id
        offered.open_for_swap = False
        requested.open_for_swap = False
        log.info(
            "Exchanged shifts %s <-> %s (now owned by %s / %s)",
            offered.shift_id,
            requested.shift_id,
            offered.employee_id,
            requested.employee_id,
        )

    # ========== Availability ==========
    def set_open_for_swap(self, shift_id: UUID, owner_id: UUID, flag: bool) -> ScheduleEntry:
        """Toggle a shift's open-for-swap flag.

        The flag cannot be withdrawn while an active swap request references
        the shift; the negotiation has to end first.
        """
        with translate_storage_errors(), self.locks.hold([shift_id], timeout=self.lock_timeout_seconds):
            try:
                self.bound_lock_wait()
                entry = self.lock_shifts([shift_id])[shift_id]
                if entry.employee_id != owner_id:
                    raise Unauthorized(
                        "Only the shift owner can change its swap availability",
                        required_actor="owner",
                        actor_id=owner_id,
                    )

                if not flag:
                    commitment = self.db.execute(
                        select(ShiftCommitment.swap_request_id).where(ShiftCommitment.shift_id == shift_id)
                    ).scalar_one_or_none()
                    if commitment is not None:
                        raise Conflict(
                            "Shift is part of an active swap request and cannot be closed",
                            shift_id=shift_id,
                            conflicting_request_id=commitment,
                        )

                entry.open_for_swap = flag
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(entry)
        return entry

    def list_swappable(self, week: Optional[int], exclude_owner_id: Optional[UUID]) -> List[ScheduleEntry]:
        """Open shifts not owned by exclude_owner_id and not tied up in an active swap."""
        stmt = (
            select(ScheduleEntry)
            .outerjoin(ShiftCommitment, ShiftCommitment.shift_id == ScheduleEntry.shift_id)
            .where(ScheduleEntry.open_for_swap.is_(True), ShiftCommitment.shift_id.is_(None))
        )
        if week is not None:
            stmt = stmt.where(ScheduleEntry.week_number == week)
        if exclude_owner_id is not None:
            stmt = stmt.where(ScheduleEntry.employee_id != exclude_owner_id)

        stmt = stmt.order_by(ScheduleEntry.week_number, ScheduleEntry.created_at, ScheduleEntry.shift_id)
        return list(self.db.execute(stmt).scalars().all())
