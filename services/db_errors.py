# services/db_errors.py
from __future__ import annotations

import re

from sqlalchemy.exc import IntegrityError

from app.errors import Conflict

# unique column / constraint -> business code
UNIQUE_CONFLICT_MAP: dict[str, tuple[str, str]] = {
    "users.email": ("EMAIL_TAKEN", "Email already registered"),
    "users_email_key": ("EMAIL_TAKEN", "Email already registered"),
    "users.referral_code": ("REFERRAL_CODE_TAKEN", "Referral code already in use"),
    "users_referral_code_key": ("REFERRAL_CODE_TAKEN", "Referral code already in use"),
    "transactions.reference": ("DUPLICATE_REFERENCE", "Transaction reference already used"),
    "transactions_reference_key": ("DUPLICATE_REFERENCE", "Transaction reference already used"),
    "payouts.booking_id": ("PAYOUT_EXISTS", "A payout already exists for this booking"),
    "payouts_booking_id_key": ("PAYOUT_EXISTS", "A payout already exists for this booking"),
    "referrals.referred_id": ("REFERRAL_EXISTS", "User was already referred"),
    "referrals_referred_id_key": ("REFERRAL_EXISTS", "User was already referred"),
}

# word-boundary match (avoids substring mistakes)
_CONFLICT_PATTERN = re.compile(r"\b(" + "|".join(map(re.escape, UNIQUE_CONFLICT_MAP.keys())) + r")\b")


def _extract_key(exc: Exception) -> str | None:
    """
    Extract the violated unique key from:
    - str(exc) (sqlite: "UNIQUE constraint failed: users.email")
    - psycopg2 diagnostics on the wrapped DBAPI error (constraint_name)
    """
    orig = getattr(exc, "orig", exc)

    diag = getattr(orig, "diag", None)
    if diag is not None:
        name = getattr(diag, "constraint_name", None)
        if isinstance(name, str) and name in UNIQUE_CONFLICT_MAP:
            return name

    m = _CONFLICT_PATTERN.search(str(orig))
    if m:
        return m.group(1)
    return None


def raise_for_db_error(exc: Exception) -> None:
    """
    Convert known unique-key violations into Conflict; re-raise anything else.
    """
    if isinstance(exc, IntegrityError):
        key = _extract_key(exc)
        if key:
            code, message = UNIQUE_CONFLICT_MAP[key]
            raise Conflict(message, code=code) from exc
        raise Conflict("Conflicting write", code="DB_CONFLICT") from exc
    raise exc
