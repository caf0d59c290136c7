import os

import pytest

# Settings() requires a DATABASE_URL at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy.orm import sessionmaker  # noqa: E402

from shiftswap.core.database import Base, make_engine  # noqa: E402
from shiftswap.core.locks import ShiftLockRegistry  # noqa: E402
from shiftswap.models.employee import EmployeeRole  # noqa: E402
from shiftswap.models.notification import Notification  # noqa: E402,F401
from shiftswap.services.notifications import RecordingDispatcher  # noqa: E402
from shiftswap.services.policies import NeverAutoApprove  # noqa: E402
from shiftswap.services.schedule_store import ScheduleStore  # noqa: E402
from shiftswap.services.state_machine import SwapRequestStateMachine  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads get their own connections."""
    eng = make_engine(f"sqlite:///{tmp_path / 'swaps.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def locks():
    return ShiftLockRegistry()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def make_machine(locks, dispatcher):
    def _make(session, policy=None, **kwargs):
        return SwapRequestStateMachine(
            session,
            dispatcher=dispatcher,
            policy=policy or NeverAutoApprove(),
            locks=locks,
            lock_timeout_seconds=kwargs.pop("lock_timeout_seconds", 5.0),
            notify_admins_on_decline=kwargs.pop("notify_admins_on_decline", False),
        )

    return _make


@pytest.fixture
def machine(db, make_machine):
    return make_machine(db)


@pytest.fixture
def store(db, locks):
    return ScheduleStore(db, 5.0, locks)


@pytest.fixture
def crew(store):
    """Employees A, B, C and an admin, plus open shifts S1 (A), S2 (B), S3 (C) in week 10."""
    a = store.add_employee("Alice", "alice@example.com")
    b = store.add_employee("Bob", "bob@example.com")
    c = store.add_employee("Carol", "carol@example.com")
    admin = store.add_employee("Ada Admin", "admin@example.com", role=EmployeeRole.admin)

    s1 = store.add_shift(a.employee_id, 10, "09:00-17:00", ["saturday", "sunday"], open_for_swap=True)
    s2 = store.add_shift(b.employee_id, 10, "13:00-21:00", ["monday"], open_for_swap=True)
    s3 = store.add_shift(c.employee_id, 10, "06:00-14:00", [], open_for_swap=True)

    return {
        "A": a.employee_id,
        "B": b.employee_id,
        "C": c.employee_id,
        "admin": admin.employee_id,
        "S1": s1.shift_id,
        "S2": s2.shift_id,
        "S3": s3.shift_id,
    }
