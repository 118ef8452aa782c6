# app/bookings/model.py
from __future__ import annotations

from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"


class BookingAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    PAY = "pay"
    COMPLETE = "complete"
    DISPUTE = "dispute"
    RESOLVE_CANCEL = "resolve_cancel"
    RESOLVE_COMPLETE = "resolve_complete"


# gateway view of the charge behind a `pay` action, as shown to the client
class PaymentState(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class Effect(str, Enum):
    STAMP_ACCEPTED = "stamp_accepted"
    RECORD_PAYMENT = "record_payment"
    CHECK_REFERRALS = "check_referrals"
    STAMP_COMPLETED = "stamp_completed"
    CREATE_PAYOUT = "create_payout"
    OPEN_DISPUTE = "open_dispute"
    NOTIFY_ORGANIZER = "notify_organizer"
    NOTIFY_TALENT = "notify_talent"
    NOTIFY_COUNTERPARTY = "notify_counterparty"
    NOTIFY_ADMINS = "notify_admins"


ORGANIZER_DISPUTE_REASONS = frozenset(
    {"TALENT_NO_SHOW", "SERVICE_NOT_AS_DESCRIBED", "UNPROFESSIONAL_CONDUCT", "OTHER"}
)
TALENT_DISPUTE_REASONS = frozenset(
    {"ORGANIZER_UNRESPONSIVE", "SCOPE_DISAGREEMENT", "UNSAFE_ENVIRONMENT", "OTHER"}
)
