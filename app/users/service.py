# app/users/service.py
from __future__ import annotations

import logging
import re
from typing import Any, Optional
from uuid import UUID

from app.errors import Forbidden, NotFound, ValidationError
from app.referrals.service import create_for_signup
from app.users import repository as repo
from app.users.model import Actor, Role
from security import hash_password, verify_password
from services.audit_log import write_audit_log
from services.redaction import mask_phone

logger = logging.getLogger("gigsec.users")

_LOCAL_MPESA_RE = re.compile(r"^0[17]\d{8}$")

SELF_SERVICE_ROLES = (Role.ORGANIZER.value, Role.TALENT.value)


def normalize_mpesa_number(raw: Optional[str]) -> str:
    """
    Kenyan M-Pesa numbers in the local 07XXXXXXXX / 01XXXXXXXX form.
    Accepts +254..., 254... and bare 7XXXXXXXX input.
    """
    digits = re.sub(r"[\s\-()]", "", raw or "")
    if digits.startswith("+"):
        digits = digits[1:]
    if digits.startswith("254") and len(digits) == 12:
        digits = "0" + digits[3:]
    elif len(digits) == 9 and digits[0] in "17":
        digits = "0" + digits

    if not _LOCAL_MPESA_RE.match(digits):
        raise ValidationError("Invalid M-Pesa number", code="INVALID_MPESA_NUMBER")
    return digits


def register(
    conn,
    *,
    email: str,
    password: str,
    name: Optional[str],
    role: str,
    referral_code: Optional[str] = None,
) -> dict[str, Any]:
    role = (role or "").strip().upper()
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("role must be ORGANIZER or TALENT", code="INVALID_ROLE")

    user_id = repo.insert_user(
        conn,
        email=email,
        name=(name or "").strip() or None,
        role=role,
        password_hash=hash_password(password),
    )
    if referral_code and referral_code.strip():
        create_for_signup(conn, referred_id=user_id, code=referral_code)

    logger.info("user registered user=%s role=%s", user_id, role)
    return repo.get_user(conn, user_id)


def authenticate(conn, *, email: str, password: str) -> Optional[dict[str, Any]]:
    user = repo.get_user_by_email(conn, email)
    if not user or not user["is_active"]:
        return None
    if not verify_password(password, user["password_hash"]):
        return None
    return user


def set_mpesa_number(conn, *, actor: Actor, mpesa_phone_number: str) -> dict[str, Any]:
    if actor.role != Role.TALENT:
        raise Forbidden("Only talents have payout numbers", code="ROLE_NOT_ALLOWED")
    number = normalize_mpesa_number(mpesa_phone_number)
    if not repo.set_mpesa_number(conn, actor.user_id, number):
        raise NotFound("Talent profile not found", code="PROFILE_NOT_FOUND")
    logger.info("mpesa number updated user=%s number=%s", actor.user_id, mask_phone(number))
    return repo.get_talent_profile(conn, actor.user_id)


def verify_mpesa_number(conn, *, actor: Actor, talent_id: UUID) -> dict[str, Any]:
    if not actor.is_admin:
        raise Forbidden("Admin privileges required", code="ADMIN_ONLY")
    profile = repo.get_talent_profile(conn, talent_id)
    if not profile:
        raise NotFound("Talent profile not found", code="PROFILE_NOT_FOUND")
    if not profile.get("mpesa_phone_number"):
        raise ValidationError("Talent has not configured an M-Pesa number", code="MPESA_NUMBER_MISSING")

    repo.set_mpesa_verified(conn, talent_id, True)
    write_audit_log(conn, actor_user_id=actor.user_id, action="MPESA_VERIFY", target_id=str(talent_id))
    return repo.get_talent_profile(conn, talent_id)
