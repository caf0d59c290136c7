#!/usr/bin/env python3
"""
Script to register the first admin employee and print a bearer token for it.
Run this after the database migration has been completed.

Usage:
    python create_admin.py <email> <name>

Example:
    python create_admin.py admin@example.com "Shift Admin"
"""

import sys
from pathlib import Path

# Add the apps/api directory to the path so we can import from shiftswap
api_dir = Path(__file__).parent / "apps" / "api"
sys.path.insert(0, str(api_dir))

from shiftswap.core.database import SessionLocal  # noqa: E402
from shiftswap.core.errors import SwapError  # noqa: E402
from shiftswap.models.employee import EmployeeRole  # noqa: E402
from shiftswap.routers.auth import create_access_token  # noqa: E402
from shiftswap.services.schedule_store import ScheduleStore  # noqa: E402


def create_admin(email: str, name: str) -> bool:
    """Create an admin employee in the database."""
    db = SessionLocal()
    try:
        admin = ScheduleStore(db).add_employee(name=name, email=email, role=EmployeeRole.admin)
        token = create_access_token(data={"sub": str(admin.employee_id)})

        print("✅ Admin created successfully!")
        print(f"   Employee ID: {admin.employee_id}")
        print(f"   Name: {admin.name}")
        print(f"   Email: {admin.email}")
        print(f"   Token: {token}")
        return True
    except SwapError as e:
        db.rollback()
        print(f"❌ Error creating admin: {e.message}")
        return False
    finally:
        db.close()

if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python create_admin.py <email> <name>")
        print('Example: python create_admin.py admin@example.com "Shift Admin"')
        sys.exit(1)

    email, name = sys.argv[1], sys.argv[2]
    if not email or not name:
        print("❌ Email and name are required!")
        sys.exit(1)

    sys.exit(0 if create_admin(email, name) else 1)
