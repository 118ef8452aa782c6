# schemas.py
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, EmailStr
from uuid import UUID
from datetime import datetime
from typing import Any, Optional, List, Literal

RoleName = Literal["ADMIN", "ORGANIZER", "TALENT"]


# -------- AUTH --------
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=200)
    role: Literal["ORGANIZER", "TALENT"]
    referral_code: Optional[str] = Field(default=None, max_length=32)


class RegisterResponse(BaseModel):
    user_id: UUID
    role: RoleName
    referral_applied: bool = False


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: UUID
    role: RoleName


# -------- BOOKINGS --------
class BookingCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    talent_id: UUID
    event_title: str = Field(min_length=1, max_length=200)
    event_date: datetime
    duration_hours: int = Field(default=0, ge=0, le=72)
    event_end_at: Optional[datetime] = None
    amount_cents: int = Field(gt=0)
    notes: Optional[str] = Field(default=None, max_length=2000)


class BookingOut(BaseModel):
    id: UUID
    organizer_id: UUID
    talent_id: UUID
    event_title: str
    event_date: datetime
    duration_hours: int
    event_end_at: Optional[datetime] = None
    amount_cents: int
    platform_fee_cents: int
    talent_amount_cents: int
    status: str
    notes: Optional[str] = None
    is_paid_out: bool
    created_at: datetime
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TalentBookingUpdate(BaseModel):
    status: Literal["ACCEPTED", "DECLINED"]
    notes: Optional[str] = Field(default=None, max_length=2000)


class OrganizerBookingUpdate(BaseModel):
    action: Literal["pay", "complete", "cancel"]
    payment_reference: Optional[str] = Field(default=None, max_length=128)
    notes: Optional[str] = Field(default=None, max_length=2000)


class DisputeCreateRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=64)
    explanation: str = Field(min_length=1, max_length=5000)


class BookingActionResponse(BaseModel):
    booking: BookingOut
    dispute_id: Optional[UUID] = None
    payout_id: Optional[UUID] = None
    payment_transaction_id: Optional[UUID] = None
    payment_state: Optional[str] = None


# -------- DISPUTES --------
class DisputeOut(BaseModel):
    id: UUID
    booking_id: UUID
    raised_by_id: UUID
    reason: str
    explanation: str
    status: str
    resolution_notes: Optional[str] = None
    refund_cents: Optional[int] = None
    payout_cents: Optional[int] = None
    resolution_fee_cents: Optional[int] = None
    provider_refund_id: Optional[str] = None
    resolved_by_id: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    event_title: Optional[str] = None
    booking_amount_cents: Optional[int] = None
    booking_status: Optional[str] = None


class DisputeResolveRequest(BaseModel):
    resolution: Literal["organizer_favor", "talent_favor", "partial_resolution"]
    resolution_notes: str = Field(min_length=1, max_length=5000)
    refund_cents: Optional[int] = None
    payout_cents: Optional[int] = None


# -------- PAYOUTS --------
class PayoutOut(BaseModel):
    id: UUID
    booking_id: UUID
    talent_id: UUID
    amount_cents: int
    status: str
    reference: Optional[str] = None
    transfer_code: Optional[str] = None
    last_error: Optional[str] = None
    attempt_count: int
    processed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PayoutInitiateRequest(BaseModel):
    booking_id: UUID


class PayoutInitiateResponse(BaseModel):
    payout: PayoutOut
    transfer_code: Optional[str] = None
    requires_otp: bool
    already_initiated: bool = False


class PayoutFinalizeRequest(BaseModel):
    transfer_code: str = Field(min_length=1, max_length=64)
    otp: str = Field(min_length=1, max_length=12)


class PayoutStateResponse(BaseModel):
    payout: PayoutOut
    state: Literal["verified", "failed", "pending"]
    already_completed: bool = False


# -------- PROFILE / KYC --------
class MpesaUpdateRequest(BaseModel):
    mpesa_phone_number: str = Field(min_length=9, max_length=20)


class KycReviewRequest(BaseModel):
    decision: Literal["VERIFIED", "REJECTED"]
    rejection_reason: Optional[str] = Field(default=None, max_length=2000)
    admin_notes: Optional[str] = Field(default=None, max_length=2000)


# -------- REFERRALS --------
class ReferralValidateRequest(BaseModel):
    referral_code: Optional[str] = None


class ReferralValidateResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    referrer: Optional[dict[str, Any]] = None
    reward_cents: Optional[int] = None


class ReferralStatsResponse(BaseModel):
    referral_code: str
    total_referrals: int
    successful_referrals: int
    pending_rewards_cents: int
    total_rewards_earned_cents: int
    recent_referrals: List[dict[str, Any]]
