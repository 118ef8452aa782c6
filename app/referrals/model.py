# app/referrals/model.py
from __future__ import annotations

from enum import Enum


class ReferralStatus(str, Enum):
    PENDING = "PENDING"
    CONVERTED = "CONVERTED"
    EXPIRED = "EXPIRED"


class RewardStatus(str, Enum):
    PENDING = "PENDING"
    CREDITED = "CREDITED"
    FAILED = "FAILED"


class ConversionType(str, Enum):
    BOOKING_PAYMENT = "booking_payment"
    TALENT_PAYOUT = "talent_payout"

