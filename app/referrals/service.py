# app/referrals/service.py
from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from app.bookings import repository as bookings_repo
from app.config import WorkflowConfig
from app.errors import NotFound, ValidationError
from app.referrals import repository as repo
from app.referrals.model import ConversionType, ReferralStatus, RewardStatus
from app.store.schema import utcnow
from app.users import repository as users_repo
from services.notifications import notify

logger = logging.getLogger("gigsec.referrals")

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _code_prefix(user: dict[str, Any]) -> str:
    source = (user.get("name") or "").strip() or (user.get("email") or "")
    prefix = "".join(ch for ch in source.upper() if ch.isalnum())[:3]
    return prefix or "GIG"


def generate_referral_code(conn, user: dict[str, Any], *, max_attempts: int = 10) -> str:
    prefix = _code_prefix(user)
    for _ in range(max_attempts):
        code = prefix + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
        if not users_repo.referral_code_exists(conn, code):
            return code
    raise RuntimeError("Could not generate a unique referral code")


def ensure_referral_code(conn, user_id: UUID) -> str:
    user = users_repo.get_user(conn, user_id)
    if not user:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    if user.get("referral_code"):
        return user["referral_code"]

    code = generate_referral_code(conn, user)
    if not users_repo.set_referral_code(conn, user_id, code):
        # lost a race with another request for the same user
        return users_repo.get_user(conn, user_id)["referral_code"]
    return code


def validate_code(conn, config: WorkflowConfig, code: Optional[str]) -> dict[str, Any]:
    code = (code or "").strip()
    if not code:
        raise ValidationError("Referral code is required", code="REFERRAL_CODE_REQUIRED")

    referrer = users_repo.get_user_by_referral_code(conn, code)
    if not referrer:
        return {"valid": False, "error": "Invalid referral code"}
    if not referrer["is_active"]:
        return {"valid": False, "error": "Referral code is no longer active"}

    return {
        "valid": True,
        "referrer": {"name": referrer.get("name"), "role": referrer["role"]},
        "reward_cents": config.referral.referred_reward_cents,
    }


def create_for_signup(conn, *, referred_id: UUID, code: str) -> Optional[UUID]:
    """
    Link a freshly registered user to the owner of `code`.
    Unknown or inactive codes are rejected so the signup fails loudly.
    """
    referrer = users_repo.get_user_by_referral_code(conn, code.strip())
    if not referrer or not referrer["is_active"]:
        raise ValidationError("Invalid referral code", code="INVALID_REFERRAL_CODE")
    if referrer["id"] == referred_id:
        raise ValidationError("Cannot refer yourself", code="SELF_REFERRAL")

    referral_id = repo.insert_referral(
        conn, referrer_id=referrer["id"], referred_id=referred_id, referral_code=code.strip()
    )
    logger.info("referral created referral=%s referrer=%s", referral_id, referrer["id"])
    return referral_id


def check_and_process_conversion(
    conn,
    config: WorkflowConfig,
    *,
    user_id: UUID,
    conversion_type: str,
    booking_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Convert the user's pending referral if this event qualifies.
    Returns True only for the caller whose conditional update won.
    """
    now = now or utcnow()
    ctype = ConversionType(conversion_type)

    referral = repo.get_pending_for_referred(conn, user_id, created_after=now - config.referral.expiry)
    if not referral:
        return False

    if ctype == ConversionType.BOOKING_PAYMENT:
        if booking_id is None:
            return False
        booking = bookings_repo.get_booking(conn, booking_id)
        if not booking:
            return False
        if int(booking["amount_cents"]) < config.referral.minimum_conversion_cents:
            logger.info(
                "referral not converted: booking amount below minimum referral=%s booking=%s",
                referral["id"],
                booking_id,
            )
            return False
        if user_id not in (booking["organizer_id"], booking["talent_id"]):
            return False

    won = repo.mark_converted(
        conn,
        referral_id=referral["id"],
        conversion_type=ctype.value,
        booking_id=booking_id,
        referrer_reward_cents=config.referral.referrer_reward_cents,
        referred_reward_cents=config.referral.referred_reward_cents,
        converted_at=now,
    )
    if not won:
        return False

    notify(
        conn,
        user_id=referral["referrer_id"],
        type="REFERRAL_CONVERTED",
        title="Referral converted",
        message="Someone you referred completed their first qualifying activity.",
        booking_id=booking_id,
    )
    logger.info("referral converted referral=%s type=%s", referral["id"], ctype.value)
    return True


def get_stats(conn, user_id: UUID) -> dict[str, Any]:
    code = ensure_referral_code(conn, user_id)
    rows = repo.list_for_referrer(conn, user_id)

    pending_rewards = sum(
        int(r["referrer_reward_cents"] or 0)
        for r in rows
        if r["reward_status"] == RewardStatus.PENDING.value and r["referrer_reward_cents"]
    )
    earned = sum(
        int(r["referrer_reward_cents"] or 0)
        for r in rows
        if r["reward_status"] == RewardStatus.CREDITED.value and r["referrer_reward_cents"]
    )

    return {
        "referral_code": code,
        "total_referrals": len(rows),
        "successful_referrals": sum(1 for r in rows if r["status"] == ReferralStatus.CONVERTED.value),
        "pending_rewards_cents": pending_rewards,
        "total_rewards_earned_cents": earned,
        "recent_referrals": [
            {
                "id": r["referred_id"],
                "name": r["referred_name"],
                "email": r["referred_email"],
                "joined_at": r["referred_joined_at"],
            }
            for r in rows[:5]
        ],
    }
