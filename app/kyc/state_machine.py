# app/kyc/state_machine.py
from __future__ import annotations

from app.errors import InvalidTransition
from app.kyc.model import KycStatus
from app.users.model import VerificationStatus

V = VerificationStatus

# the user's verification status; a rejected user may submit again
ALLOWED: dict[VerificationStatus, set[VerificationStatus]] = {
    V.UNVERIFIED: {V.PENDING},
    V.PENDING: {V.VERIFIED, V.REJECTED},
    V.VERIFIED: set(),
    V.REJECTED: {V.PENDING},
}

# one submission row; resubmitting creates a new row
SUBMISSION_ALLOWED: dict[KycStatus, set[KycStatus]] = {
    KycStatus.PENDING: {KycStatus.VERIFIED, KycStatus.REJECTED},
    KycStatus.VERIFIED: set(),
    KycStatus.REJECTED: set(),
}


def assert_transition(old: str, new: str) -> None:
    if VerificationStatus(new) not in ALLOWED[VerificationStatus(old)]:
        raise InvalidTransition("kyc", old, new)


def assert_submission_transition(old: str, new: str) -> None:
    if KycStatus(new) not in SUBMISSION_ALLOWED[KycStatus(old)]:
        raise InvalidTransition("kyc", old, new)
