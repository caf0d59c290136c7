import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Enum, Uuid
from sqlalchemy.sql import func

from shiftswap.core.database import Base


class EmployeeRole(str, enum.Enum):
    employee = "employee"
    admin = "admin"


class Employee(Base):
    __tablename__ = "employees"

    employee_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)

    role = Column(
        Enum(EmployeeRole, name="employee_role", native_enum=False, validate_strings=True),
        nullable=False,
        default=EmployeeRole.employee,
    )
    # Default for shifts registered after this is set; each shift keeps its own flag
    open_for_swap = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == EmployeeRole.admin
