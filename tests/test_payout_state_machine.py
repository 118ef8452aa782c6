

import pytest

from app.errors import InvalidTransition
from app.payouts.state_machine import assert_processing_invariant, assert_transition


def test_valid_transitions():
    assert_transition("PENDING", "PROCESSING")
    assert_transition("PENDING", "FAILED")
    assert_transition("PROCESSING", "COMPLETED")
    assert_transition("PROCESSING", "FAILED")
    # retry after a gateway outage
    assert_transition("PROCESSING", "PROCESSING")


def test_invalid_transition_skipping_states():
    with pytest.raises(InvalidTransition) as exc:
        assert_transition("PENDING", "COMPLETED")
    assert exc.value.current == "PENDING"
    assert exc.value.requested == "COMPLETED"


def test_terminal_states_cannot_transition():
    with pytest.raises(InvalidTransition):
        assert_transition("COMPLETED", "FAILED")
    with pytest.raises(InvalidTransition):
        assert_transition("FAILED", "COMPLETED")
    with pytest.raises(InvalidTransition):
        assert_transition("COMPLETED", "PROCESSING")


def test_processing_requires_reference():
    with pytest.raises(ValueError):
        assert_processing_invariant("PROCESSING", None)
    assert_processing_invariant("PROCESSING", "ref-123")
    assert_processing_invariant("FAILED", None)


def test_repository_refuses_processing_without_reference(admin, organizer, payable_talent, make_booking):
    from app.payouts import repository as repo
    from db import get_conn

    booking_id = make_booking(organizer, payable_talent, status="COMPLETED")
    with get_conn() as conn:
        payout = repo.create_pending(conn, booking_id=booking_id, talent_id=payable_talent.user_id, amount_cents=100)
        with pytest.raises(ValueError):
            repo.update_status(conn, payout_id=payout["id"], from_status="PENDING", new_status="PROCESSING")
        with pytest.raises(InvalidTransition):
            repo.update_status(conn, payout_id=payout["id"], from_status="PENDING", new_status="COMPLETED")
        assert repo.get_payout(conn, payout["id"])["status"] == "PENDING"
