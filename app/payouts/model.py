# app/payouts/model.py
from __future__ import annotations

from enum import Enum


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class VerifyState(str, Enum):
    VERIFIED = "verified"
    FAILED = "failed"
    PENDING = "pending"

