import pytest

from shiftswap.core.errors import InvalidTransition
from shiftswap.models.swap_request import ACTIVE_STATUSES, TERMINAL_STATUSES, SwapStatus
from shiftswap.services.state_machine import (
    EXCHANGE_STATUSES,
    TRANSITIONS,
    SwapEvent,
    allowed_events,
    next_status,
)


def test_create_always_starts_pending():
    assert next_status(None, SwapEvent.create) == SwapStatus.pending


@pytest.mark.parametrize(
    "status,event,expected",
    [
        (SwapStatus.pending, SwapEvent.accept, SwapStatus.accepted),
        (SwapStatus.pending, SwapEvent.decline, SwapStatus.declined),
        (SwapStatus.pending, SwapEvent.cancel, SwapStatus.cancelled),
        (SwapStatus.pending, SwapEvent.auto_approve, SwapStatus.auto_approved),
        (SwapStatus.accepted, SwapEvent.approve, SwapStatus.approved),
        (SwapStatus.accepted, SwapEvent.reject, SwapStatus.rejected),
    ],
)
def test_allowed_transitions(status, event, expected):
    assert next_status(status, event) == expected


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
@pytest.mark.parametrize("event", list(SwapEvent))
def test_terminal_statuses_reject_every_event(status, event):
    with pytest.raises(InvalidTransition) as exc:
        next_status(status, event)
    assert exc.value.detail["current_status"] == status
    assert exc.value.detail["allowed_events"] == []


def test_cancel_is_only_valid_while_pending():
    with pytest.raises(InvalidTransition) as exc:
        next_status(SwapStatus.accepted, SwapEvent.cancel)
    assert exc.value.detail["event"] == SwapEvent.cancel
    assert set(exc.value.detail["allowed_events"]) == {SwapEvent.approve, SwapEvent.reject}


def test_admin_cannot_decide_a_pending_request():
    with pytest.raises(InvalidTransition):
        next_status(SwapStatus.pending, SwapEvent.approve)


def test_active_and_terminal_partition_all_statuses():
    assert ACTIVE_STATUSES | TERMINAL_STATUSES == set(SwapStatus)
    assert not ACTIVE_STATUSES & TERMINAL_STATUSES
    assert {s for (s, _e) in TRANSITIONS if s is not None} <= ACTIVE_STATUSES


def test_only_approvals_exchange_shifts():
    assert EXCHANGE_STATUSES == {SwapStatus.approved, SwapStatus.auto_approved}
    assert allowed_events(SwapStatus.pending) == [
        SwapEvent.accept,
        SwapEvent.decline,
        SwapEvent.cancel,
        SwapEvent.auto_approve,
    ]


def test_status_values_are_wire_values():
    assert SwapStatus("auto-approved") is SwapStatus.auto_approved
    with pytest.raises(ValueError):
        SwapStatus("Auto-Approved")
