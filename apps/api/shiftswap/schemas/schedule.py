from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional

from uuid import UUID

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class OpenForSwapUpdate(BaseModel):
    open_for_swap: bool


class ScheduleEntryCreate(BaseModel):
    employee_id: UUID
    week_number: int = Field(ge=1, le=53)
    working_hours: str = Field(min_length=1)
    off_days: list[Weekday] = Field(default_factory=list)
    open_for_swap: Optional[bool] = None  # None = inherit the employee default


class ScheduleEntryOut(BaseModel):
    shift_id: str
    employee_id: str
    week_number: int
    working_hours: str
    off_days: list[str]
    open_for_swap: bool
    created_at: datetime


class EmployeeCreate(BaseModel):
    name: str
    email: EmailStr
    role: Literal["employee", "admin"] = "employee"
    open_for_swap: bool = False


class EmployeeOut(BaseModel):
    employee_id: str
    name: str
    email: str
    role: str
    open_for_swap: bool
    is_active: bool
