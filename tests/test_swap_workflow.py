import uuid

import pytest
from sqlalchemy import select

from shiftswap.core.errors import (
    InvalidTransition,
    NotFound,
    ShiftAlreadyCommitted,
    Unauthorized,
    ValidationError,
)
from shiftswap.models.schedule_entry import ScheduleEntry
from shiftswap.models.swap_request import ShiftCommitment, SwapStatus
from shiftswap.services.policies import AlwaysAutoApprove, SameWeekAutoApprove


def _owner(db, shift_id):
    return db.get(ScheduleEntry, shift_id).employee_id


def _commitments(db):
    rows = db.execute(select(ShiftCommitment.shift_id, ShiftCommitment.swap_request_id)).all()
    return {shift_id: swap_id for shift_id, swap_id in rows}


def _events(dispatcher):
    return [(e.target_user_id, e.new_status) for e in dispatcher.events]


def test_swappable_listing_excludes_callers_own_shifts(store, crew):
    listed = [s.shift_id for s in store.list_swappable(10, crew["B"])]

    assert crew["S2"] not in listed
    assert set(listed) == {crew["S1"], crew["S3"]}


def test_create_targeted_request_commits_both_shifts(machine, db, crew, dispatcher):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"], notes="  need saturday off ")

    assert swap.status == SwapStatus.pending
    assert swap.requester_id == crew["B"]
    assert swap.recipient_id == crew["A"]
    assert swap.notes == "need saturday off"
    assert _commitments(db) == {crew["S1"]: swap.swap_request_id, crew["S2"]: swap.swap_request_id}
    assert _events(dispatcher) == [(crew["A"], SwapStatus.pending)]


def test_second_request_for_committed_shift_is_rejected(machine, crew):
    first = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    with pytest.raises(ShiftAlreadyCommitted) as exc:
        machine.create_swap_request(crew["C"], crew["S3"], crew["S1"])

    assert exc.value.shift_id == crew["S1"]
    assert exc.value.conflicting_request_id == first.swap_request_id
    assert exc.value.retryable is True


def test_committed_shift_drops_out_of_swappable_listing(machine, store, crew):
    machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    listed = [s.shift_id for s in store.list_swappable(10, crew["C"])]
    assert listed == []


def test_accept_then_cancel_is_an_invalid_transition(machine, crew, dispatcher):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    accepted = machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=True)
    assert accepted.status == SwapStatus.accepted
    assert _events(dispatcher)[1:] == [
        (crew["B"], SwapStatus.accepted),
        (crew["admin"], SwapStatus.accepted),
    ]

    with pytest.raises(InvalidTransition) as exc:
        machine.cancel_swap_request(swap.swap_request_id, crew["B"])
    assert exc.value.detail["current_status"] == SwapStatus.accepted


def test_admin_approval_exchanges_ownership(machine, db, crew, dispatcher):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])
    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=True)

    approved = machine.decide_swap_request(swap.swap_request_id, crew["admin"], approve=True, admin_notes="ok")

    assert approved.status == SwapStatus.approved
    assert approved.decided_by == crew["admin"]
    assert approved.admin_notes == "ok"
    assert _owner(db, crew["S1"]) == crew["B"]
    assert _owner(db, crew["S2"]) == crew["A"]
    assert db.get(ScheduleEntry, crew["S1"]).open_for_swap is False
    assert db.get(ScheduleEntry, crew["S2"]).open_for_swap is False
    assert _commitments(db) == {}
    assert _events(dispatcher)[-2:] == [
        (crew["B"], SwapStatus.approved),
        (crew["A"], SwapStatus.approved),
    ]


def test_admin_rejection_keeps_ownership_and_frees_shifts(machine, store, db, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])
    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=True)

    rejected = machine.decide_swap_request(swap.swap_request_id, crew["admin"], approve=False)

    assert rejected.status == SwapStatus.rejected
    assert _owner(db, crew["S1"]) == crew["A"]
    assert _owner(db, crew["S2"]) == crew["B"]
    assert crew["S1"] in [s.shift_id for s in store.list_swappable(10, crew["B"])]


def test_decline_releases_shifts_for_new_requests(machine, crew, dispatcher):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    declined = machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=False)
    assert declined.status == SwapStatus.declined
    assert _events(dispatcher)[-1] == (crew["B"], SwapStatus.declined)

    again = machine.create_swap_request(crew["C"], crew["S3"], crew["S1"])
    assert again.status == SwapStatus.pending


def test_decline_notifies_admins_when_enabled(db, make_machine, crew, dispatcher):
    machine = make_machine(db, notify_admins_on_decline=True)
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=False)

    assert _events(dispatcher)[1:] == [
        (crew["B"], SwapStatus.declined),
        (crew["admin"], SwapStatus.declined),
    ]


def test_terminal_requests_accept_no_further_events(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])
    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=False)
    swap_id = swap.swap_request_id

    with pytest.raises(InvalidTransition):
        machine.respond_to_swap_request(swap_id, crew["A"], accept=True)
    with pytest.raises(InvalidTransition):
        machine.cancel_swap_request(swap_id, crew["B"])
    with pytest.raises(InvalidTransition):
        machine.decide_swap_request(swap_id, crew["admin"], approve=True)
    with pytest.raises(InvalidTransition):
        machine.auto_approve(swap_id, actor_id=crew["admin"])

    assert machine.repo.get(swap_id).status == SwapStatus.declined


def test_history_records_every_transition(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"], notes="please")
    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=True)
    machine.decide_swap_request(swap.swap_request_id, crew["admin"], approve=True)

    steps = [(h.from_status, h.to_status, h.actor_id) for h in machine.repo.history(swap.swap_request_id)]
    assert steps == [
        (None, SwapStatus.pending, crew["B"]),
        (SwapStatus.pending, SwapStatus.accepted, crew["A"]),
        (SwapStatus.accepted, SwapStatus.approved, crew["admin"]),
    ]


# ========== Actor and input checks ==========
def test_only_the_recipient_can_respond(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    with pytest.raises(Unauthorized) as exc:
        machine.respond_to_swap_request(swap.swap_request_id, crew["C"], accept=True)
    assert exc.value.detail["required_actor"] == "recipient"


def test_only_the_requester_can_cancel(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    with pytest.raises(Unauthorized):
        machine.cancel_swap_request(swap.swap_request_id, crew["A"])

    cancelled = machine.cancel_swap_request(swap.swap_request_id, crew["B"])
    assert cancelled.status == SwapStatus.cancelled


def test_non_admin_cannot_decide(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])
    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=True)

    with pytest.raises(Unauthorized) as exc:
        machine.decide_swap_request(swap.swap_request_id, crew["A"], approve=True)
    assert exc.value.detail["required_actor"] == "admin"


def test_admin_cannot_approve_before_recipient_accepts(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    with pytest.raises(InvalidTransition) as exc:
        machine.decide_swap_request(swap.swap_request_id, crew["admin"], approve=True)
    assert exc.value.detail["current_status"] == SwapStatus.pending


def test_cannot_offer_someone_elses_shift(machine, crew):
    with pytest.raises(Unauthorized):
        machine.create_swap_request(crew["B"], crew["S1"], crew["S3"])


def test_cannot_swap_a_shift_for_itself(machine, crew):
    with pytest.raises(ValidationError) as exc:
        machine.create_swap_request(crew["B"], crew["S2"], crew["S2"])
    assert exc.value.detail["reason"] == "same_shift"


def test_cannot_request_a_shift_you_already_own(machine, store, crew):
    extra = store.add_shift(crew["B"], 11, "09:00-17:00", open_for_swap=True)

    with pytest.raises(ValidationError) as exc:
        machine.create_swap_request(crew["B"], crew["S2"], extra.shift_id)
    assert exc.value.detail["reason"] == "self_owned"


def test_closed_shifts_cannot_be_swapped(machine, store, crew):
    closed = store.add_shift(crew["A"], 10, "17:00-23:00", open_for_swap=False)

    with pytest.raises(ValidationError) as exc:
        machine.create_swap_request(crew["B"], crew["S2"], closed.shift_id)
    assert exc.value.detail == {
        "field": "requested_shift_id",
        "reason": "shift_not_open",
    }


def test_notes_length_is_bounded(machine, crew):
    with pytest.raises(ValidationError) as exc:
        machine.create_swap_request(crew["B"], crew["S2"], crew["S1"], notes="x" * 1001)
    assert exc.value.detail["reason"] == "too_long"


def test_unknown_ids_raise_not_found(machine, crew):
    with pytest.raises(NotFound):
        machine.create_swap_request(crew["B"], crew["S2"], uuid.uuid4())
    with pytest.raises(NotFound):
        machine.respond_to_swap_request(uuid.uuid4(), crew["A"], accept=True)
    with pytest.raises(NotFound):
        machine.create_swap_request(uuid.uuid4(), crew["S2"], crew["S1"])


def test_get_for_party_hides_request_from_outsiders(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    assert machine.get_for_party(swap.swap_request_id, crew["A"]).swap_request_id == swap.swap_request_id
    assert machine.get_for_party(swap.swap_request_id, crew["admin"]).swap_request_id == swap.swap_request_id
    with pytest.raises(Unauthorized):
        machine.get_for_party(swap.swap_request_id, crew["C"])


# ========== Atomicity ==========
def test_ownership_change_blocks_approval(machine, db, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])
    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=True)

    # S1 reassigned out of band after the recipient accepted
    db.get(ScheduleEntry, crew["S1"]).employee_id = crew["C"]
    db.commit()

    with pytest.raises(InvalidTransition) as exc:
        machine.decide_swap_request(swap.swap_request_id, crew["admin"], approve=True)
    assert exc.value.detail["reason"] == "ownership_changed"

    assert machine.repo.get(swap.swap_request_id).status == SwapStatus.accepted
    assert _owner(db, crew["S2"]) == crew["B"]


def test_failure_after_exchange_rolls_back_everything(machine, db, crew, dispatcher, monkeypatch):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])
    machine.respond_to_swap_request(swap.swap_request_id, crew["A"], accept=True)
    sent_before = len(dispatcher.events)

    def boom(*args, **kwargs):
        raise RuntimeError("outbox unavailable")

    monkeypatch.setattr(machine.outbox, "stage", boom)

    with pytest.raises(RuntimeError):
        machine.decide_swap_request(swap.swap_request_id, crew["admin"], approve=True)

    assert machine.repo.get(swap.swap_request_id).status == SwapStatus.accepted
    assert _owner(db, crew["S1"]) == crew["A"]
    assert _owner(db, crew["S2"]) == crew["B"]
    assert set(_commitments(db)) == {crew["S1"], crew["S2"]}
    assert len(machine.repo.history(swap.swap_request_id)) == 2
    assert len(dispatcher.events) == sent_before


# ========== Open offers ==========
def test_open_offer_is_broadcast_and_claimable(machine, db, crew, dispatcher):
    offer = machine.create_swap_request(crew["B"], crew["S2"])

    assert offer.recipient_id is None
    assert offer.requested_shift_id is None
    assert _events(dispatcher) == [(None, SwapStatus.pending)]
    assert [o.swap_request_id for o in machine.repo.list_open_offers(crew["C"])] == [offer.swap_request_id]
    assert machine.repo.list_open_offers(crew["B"]) == []

    claimed = machine.respond_to_swap_request(
        offer.swap_request_id, crew["C"], accept=True, requested_shift_id=crew["S3"]
    )
    assert claimed.status == SwapStatus.accepted
    assert claimed.recipient_id == crew["C"]
    assert claimed.requested_shift_id == crew["S3"]
    assert _commitments(db)[crew["S3"]] == offer.swap_request_id

    machine.decide_swap_request(offer.swap_request_id, crew["admin"], approve=True)
    assert _owner(db, crew["S2"]) == crew["C"]
    assert _owner(db, crew["S3"]) == crew["B"]


def test_claiming_an_open_offer_requires_a_shift(machine, crew):
    offer = machine.create_swap_request(crew["B"], crew["S2"])

    with pytest.raises(ValidationError) as exc:
        machine.respond_to_swap_request(offer.swap_request_id, crew["C"], accept=True)
    assert exc.value.detail["reason"] == "required_for_open_offer"


def test_requester_cannot_claim_own_offer(machine, store, crew):
    offer = machine.create_swap_request(crew["B"], crew["S2"])
    extra = store.add_shift(crew["B"], 10, "22:00-06:00", open_for_swap=True)

    with pytest.raises(Unauthorized):
        machine.respond_to_swap_request(offer.swap_request_id, crew["B"], accept=True, requested_shift_id=extra.shift_id)


def test_claim_with_someone_elses_shift_is_rejected(machine, crew):
    offer = machine.create_swap_request(crew["B"], crew["S2"])

    with pytest.raises(Unauthorized):
        machine.respond_to_swap_request(offer.swap_request_id, crew["C"], accept=True, requested_shift_id=crew["S1"])
    assert machine.repo.get(offer.swap_request_id).recipient_id is None


def test_claimed_offer_is_no_longer_open_to_others(machine, crew):
    offer = machine.create_swap_request(crew["B"], crew["S2"])
    machine.respond_to_swap_request(offer.swap_request_id, crew["C"], accept=True, requested_shift_id=crew["S3"])

    with pytest.raises(Unauthorized):
        machine.respond_to_swap_request(offer.swap_request_id, crew["A"], accept=True, requested_shift_id=crew["S1"])


def test_cancelling_an_unclaimed_offer_notifies_nobody(machine, crew, dispatcher):
    offer = machine.create_swap_request(crew["B"], crew["S2"])

    cancelled = machine.cancel_swap_request(offer.swap_request_id, crew["B"])

    assert cancelled.status == SwapStatus.cancelled
    assert _events(dispatcher) == [(None, SwapStatus.pending)]
    assert machine.repo.list_open_offers(crew["C"]) == []


def test_cancelling_a_targeted_request_notifies_the_recipient(machine, crew, dispatcher):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    machine.cancel_swap_request(swap.swap_request_id, crew["B"])

    assert _events(dispatcher)[-1] == (crew["A"], SwapStatus.cancelled)


def test_claiming_a_cancelled_offer_reports_it_closed(machine, crew):
    offer = machine.create_swap_request(crew["B"], crew["S2"])
    machine.cancel_swap_request(offer.swap_request_id, crew["B"])

    with pytest.raises(InvalidTransition) as exc:
        machine.respond_to_swap_request(offer.swap_request_id, crew["C"], accept=True, requested_shift_id=crew["S3"])
    assert exc.value.detail["reason"] == "closed"


# ========== Auto-approval ==========
def test_same_week_policy_auto_approves_targeted_requests(db, make_machine, crew, dispatcher):
    machine = make_machine(db, policy=SameWeekAutoApprove())

    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    assert swap.status == SwapStatus.auto_approved
    assert swap.decided_by is None
    assert _owner(db, crew["S1"]) == crew["B"]
    assert _owner(db, crew["S2"]) == crew["A"]
    assert _events(dispatcher) == [
        (crew["A"], SwapStatus.pending),
        (crew["B"], SwapStatus.auto_approved),
        (crew["A"], SwapStatus.auto_approved),
    ]
    history = machine.repo.history(swap.swap_request_id)
    assert [h.to_status for h in history] == [SwapStatus.pending, SwapStatus.auto_approved]
    assert history[-1].actor_id is None


def test_same_week_policy_leaves_cross_week_requests_pending(db, make_machine, store, crew):
    machine = make_machine(db, policy=SameWeekAutoApprove())
    later = store.add_shift(crew["A"], 11, "09:00-17:00", open_for_swap=True)

    swap = machine.create_swap_request(crew["B"], crew["S2"], later.shift_id)

    assert swap.status == SwapStatus.pending


def test_open_offers_are_never_auto_approved(db, make_machine, crew):
    machine = make_machine(db, policy=AlwaysAutoApprove())

    offer = machine.create_swap_request(crew["B"], crew["S2"])

    assert offer.status == SwapStatus.pending
    with pytest.raises(InvalidTransition) as exc:
        machine.auto_approve(offer.swap_request_id, actor_id=crew["admin"])
    assert exc.value.detail["reason"] == "untargeted"


def test_default_policy_refuses_system_auto_approval(machine, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    with pytest.raises(InvalidTransition) as exc:
        machine.auto_approve(swap.swap_request_id)
    assert exc.value.detail["reason"] == "policy_declined"
    assert machine.repo.get(swap.swap_request_id).status == SwapStatus.pending


def test_admin_can_shortcut_a_pending_request(machine, db, crew):
    swap = machine.create_swap_request(crew["B"], crew["S2"], crew["S1"])

    with pytest.raises(Unauthorized):
        machine.auto_approve(swap.swap_request_id, actor_id=crew["A"])

    done = machine.auto_approve(swap.swap_request_id, actor_id=crew["admin"])
    assert done.status == SwapStatus.auto_approved
    assert done.decided_by == crew["admin"]
    assert _owner(db, crew["S1"]) == crew["B"]
    assert _commitments(db) == {}
