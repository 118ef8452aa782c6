# app/referrals/state_machine.py
from __future__ import annotations

from app.errors import InvalidTransition
from app.referrals.model import ReferralStatus, RewardStatus

ALLOWED: dict[ReferralStatus, set[ReferralStatus]] = {
    ReferralStatus.PENDING: {ReferralStatus.CONVERTED, ReferralStatus.EXPIRED},
    ReferralStatus.CONVERTED: set(),
    ReferralStatus.EXPIRED: set(),
}

# reward bookkeeping runs on CONVERTED referrals only
REWARD_ALLOWED: dict[RewardStatus, set[RewardStatus]] = {
    RewardStatus.PENDING: {RewardStatus.CREDITED, RewardStatus.FAILED},
    RewardStatus.CREDITED: set(),
    RewardStatus.FAILED: set(),
}


def assert_transition(old: str, new: str) -> None:
    if ReferralStatus(new) not in ALLOWED[ReferralStatus(old)]:
        raise InvalidTransition("referral", old, new)


def assert_reward_transition(old: str, new: str) -> None:
    if RewardStatus(new) not in REWARD_ALLOWED[RewardStatus(old)]:
        raise InvalidTransition("referral_reward", old, new)
