# app/payouts/state_machine.py
from __future__ import annotations

from app.errors import InvalidTransition

ALLOWED = {
    "PENDING": {"PROCESSING", "FAILED"},
    "PROCESSING": {"COMPLETED", "FAILED", "PROCESSING"},  # PROCESSING->PROCESSING on retry
    "COMPLETED": set(),
    "FAILED": set(),
}


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition("payout", old, new)


def assert_processing_invariant(new_status: str, reference: str | None) -> None:
    """
    Invariant: a PROCESSING payout MUST carry the gateway reference
    it was (or is about to be) submitted under.
    """
    if new_status == "PROCESSING" and not reference:
        raise ValueError("Invariant violation: status=PROCESSING requires reference")
