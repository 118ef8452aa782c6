# app/payouts/service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from app.bookings import repository as bookings_repo
from app.config import WorkflowConfig
from app.errors import (
    ExternalProviderError,
    Forbidden,
    InvalidTransition,
    NotFound,
    PayoutPrerequisiteError,
    ValidationError,
)
from app.payouts import repository as repo
from app.payouts.model import PayoutStatus, VerifyState
from app.providers.base import ProviderResult, TransferProvider, TransferRequest
from app.referrals.service import check_and_process_conversion
from app.store.schema import utcnow
from app.users import repository as users_repo
from app.users.model import Actor
from db import get_conn
from services.audit_log import write_audit_log
from services.notifications import notify
from services.redaction import mask_phone
from services.transactions import TransactionType, get_by_reference, record_transaction

logger = logging.getLogger("gigsec.payouts")


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise Forbidden("Admin privileges required", code="ADMIN_ONLY")


def check_prerequisites(conn, talent_id: UUID) -> dict[str, Any]:
    """
    Raise PayoutPrerequisiteError for the first unmet prerequisite,
    in the order mpesa_number, mpesa_verified, kyc_verified.
    """
    user = users_repo.get_user(conn, talent_id)
    if not user:
        raise NotFound("Talent not found", code="TALENT_NOT_FOUND")
    profile = users_repo.get_talent_profile(conn, talent_id) or {}

    if not profile.get("mpesa_phone_number"):
        raise PayoutPrerequisiteError("mpesa_number", "Talent has not configured an M-Pesa number")
    if not profile.get("mpesa_verified"):
        raise PayoutPrerequisiteError("mpesa_verified", "Talent M-Pesa number is not verified")
    if user["verification_status"] != "VERIFIED":
        raise PayoutPrerequisiteError("kyc_verified", "Talent KYC is not verified")

    return {"user": user, "profile": profile}


def _prerequisite_state(conn, talent_id: UUID) -> dict[str, bool]:
    user = users_repo.get_user(conn, talent_id) or {}
    profile = users_repo.get_talent_profile(conn, talent_id) or {}
    return {
        "mpesa_number": bool(profile.get("mpesa_phone_number")),
        "mpesa_verified": bool(profile.get("mpesa_verified")),
        "kyc_verified": user.get("verification_status") == "VERIFIED",
    }


def list_payouts(conn) -> dict[str, Any]:
    pending = repo.list_by_status(conn, PayoutStatus.PENDING.value)
    for p in pending:
        p["prerequisites"] = _prerequisite_state(conn, p["talent_id"])
        p["ready"] = all(p["prerequisites"].values())
    return {
        "pending": pending,
        "processing": repo.list_by_status(conn, PayoutStatus.PROCESSING.value, limit=50),
        "completed": repo.list_by_status(conn, PayoutStatus.COMPLETED.value, limit=20),
        "failed": repo.list_by_status(conn, PayoutStatus.FAILED.value, limit=20),
    }


# ==========================================================
# Initiate
# ==========================================================

def _initiation_in_flight(config: WorkflowConfig, payout: dict[str, Any], now: datetime) -> bool:
    """
    A claimed payout without transfer_code is only retryable once the last
    attempt recorded an error, or its lease ran out (crashed worker).
    """
    if payout["last_error"]:
        return False
    updated_at = payout["updated_at"]
    return updated_at is not None and now - updated_at < config.payout_inflight_lease


def _claim_for_initiation(
    conn, config: WorkflowConfig, *, booking_id: UUID, actor: Actor, now: datetime
) -> tuple[dict[str, Any], Optional[TransferRequest]]:
    booking = bookings_repo.get_booking(conn, booking_id)
    if not booking:
        raise NotFound("Booking not found", code="BOOKING_NOT_FOUND")
    if booking["status"] != "COMPLETED":
        raise ValidationError("Only completed bookings can be paid out", code="BOOKING_NOT_COMPLETED")

    payout = repo.get_by_booking(conn, booking_id)
    if payout is None:
        if booking["is_paid_out"]:
            raise InvalidTransition("payout", "COMPLETED", PayoutStatus.PROCESSING.value)
        payout = repo.create_pending(
            conn, booking_id=booking_id, talent_id=booking["talent_id"], amount_cents=booking["talent_amount_cents"]
        )

    status = payout["status"]
    if status == PayoutStatus.PROCESSING.value and payout["transfer_code"]:
        # already submitted; hand back the transfer instead of sending a second one
        return payout, None
    if status not in (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value):
        raise InvalidTransition("payout", status, PayoutStatus.PROCESSING.value)
    if status == PayoutStatus.PROCESSING.value and _initiation_in_flight(config, payout, now):
        raise InvalidTransition(
            "payout", status, PayoutStatus.PROCESSING.value,
            message="Payout initiation is already in progress",
        )

    pre = check_prerequisites(conn, payout["talent_id"])
    mpesa = pre["profile"]["mpesa_phone_number"]

    reference = payout["reference"] or uuid.uuid4().hex
    seen_attempts = int(payout["attempt_count"] or 0)
    won = repo.update_status(
        conn,
        payout_id=payout["id"],
        from_status=status,
        new_status=PayoutStatus.PROCESSING.value,
        reference=reference,
        mpesa_number=mpesa,
        attempt_count=seen_attempts + 1,
        last_error=None,
        expected_attempt_count=seen_attempts,
        expected_no_transfer=True,
    )
    if not won:
        latest = repo.get_payout(conn, payout["id"]) or payout
        raise InvalidTransition("payout", latest["status"], PayoutStatus.PROCESSING.value,
                                message="Payout was changed by another request")
    attempts = seen_attempts + 1

    write_audit_log(
        conn,
        actor_user_id=actor.user_id,
        action="PAYOUT_INITIATE",
        target_id=str(payout["id"]),
        metadata={"reference": reference, "attempt": attempts},
    )

    req = TransferRequest(
        reference=reference,
        amount_cents=int(payout["amount_cents"]),
        currency=config.currency,
        mpesa_number=mpesa,
        recipient_name=pre["user"].get("name") or pre["user"]["email"],
        reason=f"GigSec payout for {booking['event_title']}",
    )
    return repo.get_payout(conn, payout["id"]), req


def initiate_payout(
    config: WorkflowConfig,
    provider: TransferProvider,
    *,
    booking_id: UUID,
    actor: Actor,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    PENDING -> PROCESSING, then one gateway transfer.

    The claim commits before the gateway call, so a second request sees
    PROCESSING and cannot start another transfer. A retry after a failed
    attempt re-claims on the attempt_count it read.
    """
    _require_admin(actor)
    now = now or utcnow()

    with get_conn() as conn:
        payout, req = _claim_for_initiation(conn, config, booking_id=booking_id, actor=actor, now=now)

    if req is None:
        return {"payout": payout, "requires_otp": True, "already_initiated": True}

    logger.info(
        "payout transfer start payout=%s reference=%s to=%s",
        payout["id"],
        req.reference,
        mask_phone(req.mpesa_number),
    )

    try:
        result = provider.initiate_transfer(req)
    except ExternalProviderError as e:
        with get_conn() as conn:
            repo.record_error(conn, payout_id=payout["id"], error=e.message, provider_response=e.provider_response)
        logger.warning("payout transfer failed payout=%s error=%s", payout["id"], e.message)
        raise
    except Exception as e:
        # unexpected provider bug: still leave the payout retryable
        with get_conn() as conn:
            repo.record_error(conn, payout_id=payout["id"], error=f"{type(e).__name__}: {e}")
        logger.exception("payout transfer crashed payout=%s", payout["id"])
        raise

    with get_conn() as conn:
        if result.status == "FAILED":
            _fail(conn, payout, result, reason=result.error or "Transfer rejected by gateway")
        else:
            repo.update_status(
                conn,
                payout_id=payout["id"],
                from_status=PayoutStatus.PROCESSING.value,
                new_status=PayoutStatus.PROCESSING.value,
                transfer_code=result.transfer_code,
                provider_response=result.response,
            )
            notify(
                conn,
                user_id=payout["talent_id"],
                type="PAYOUT_INITIATED",
                title="Payout initiated",
                message=f"Your payout of {config.currency} {int(payout['amount_cents']) / 100:,.2f} is being processed.",
                booking_id=payout["booking_id"],
            )
        updated = repo.get_payout(conn, payout["id"])

    return {"payout": updated, "requires_otp": result.requires_otp, "already_initiated": False}


# ==========================================================
# Completion (shared by finalize / verify / reconcile)
# ==========================================================

def _complete(conn, config: WorkflowConfig, payout: dict[str, Any], result: ProviderResult, now: datetime) -> bool:
    """
    PROCESSING -> COMPLETED plus the once-only effects.
    False means another caller already completed it.
    """
    won = repo.update_status(
        conn,
        payout_id=payout["id"],
        from_status=PayoutStatus.PROCESSING.value,
        new_status=PayoutStatus.COMPLETED.value,
        transfer_code=result.transfer_code if not payout["transfer_code"] else None,
        provider_response=result.response,
        processed_at=now,
        last_error=None,
    )
    if not won:
        return False

    reference = f"payout:{payout['id']}"
    if get_by_reference(conn, reference) is None:
        record_transaction(
            conn,
            type=TransactionType.TALENT_PAYOUT,
            user_id=payout["talent_id"],
            booking_id=payout["booking_id"],
            amount_cents=payout["amount_cents"],
            currency=config.currency,
            reference=reference,
            metadata={"transfer_code": payout["transfer_code"] or result.transfer_code, "reference": payout["reference"]},
        )
    bookings_repo.mark_paid_out(conn, payout["booking_id"])
    notify(
        conn,
        user_id=payout["talent_id"],
        type="PAYOUT_COMPLETED",
        title="Payout completed",
        message=f"{config.currency} {int(payout['amount_cents']) / 100:,.2f} has been sent to your M-Pesa.",
        booking_id=payout["booking_id"],
    )
    check_and_process_conversion(
        conn, config, user_id=payout["talent_id"], conversion_type="talent_payout",
        booking_id=payout["booking_id"], now=now,
    )
    logger.info("payout completed payout=%s amount=%s", payout["id"], payout["amount_cents"])
    return True


def _fail(conn, payout: dict[str, Any], result: ProviderResult, *, reason: str) -> bool:
    won = repo.update_status(
        conn,
        payout_id=payout["id"],
        from_status=PayoutStatus.PROCESSING.value,
        new_status=PayoutStatus.FAILED.value,
        provider_response=result.response,
        last_error=reason,
    )
    if won:
        notify(
            conn,
            user_id=payout["talent_id"],
            type="PAYOUT_FAILED",
            title="Payout failed",
            message="Your payout could not be completed. Our team will follow up.",
            booking_id=payout["booking_id"],
        )
        logger.warning("payout failed payout=%s reason=%s", payout["id"], reason)
    return won


# ==========================================================
# Finalize (OTP)
# ==========================================================

def finalize_payout(
    config: WorkflowConfig,
    provider: TransferProvider,
    *,
    transfer_code: str,
    otp: str,
    actor: Actor,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    _require_admin(actor)
    transfer_code = (transfer_code or "").strip()
    otp = (otp or "").strip()
    if not transfer_code or not otp:
        raise ValidationError("transfer_code and otp are required", code="OTP_REQUIRED")

    with get_conn() as conn:
        payout = repo.get_by_transfer_code(conn, transfer_code)
        if not payout:
            raise NotFound("Payout not found for transfer code", code="PAYOUT_NOT_FOUND")

    if payout["status"] == PayoutStatus.COMPLETED.value:
        return {"payout": payout, "state": VerifyState.VERIFIED.value, "already_completed": True}
    if payout["status"] != PayoutStatus.PROCESSING.value:
        raise InvalidTransition("payout", payout["status"], PayoutStatus.COMPLETED.value)

    try:
        result = provider.finalize_transfer(transfer_code, otp)
    except ExternalProviderError as e:
        with get_conn() as conn:
            repo.record_error(conn, payout_id=payout["id"], error=e.message, provider_response=e.provider_response)
        raise

    now = now or utcnow()
    with get_conn() as conn:
        write_audit_log(
            conn,
            actor_user_id=actor.user_id,
            action="PAYOUT_FINALIZE",
            target_id=str(payout["id"]),
            metadata={"transfer_code": transfer_code, "gateway_status": result.status},
        )
        state = _apply_gateway_status(conn, config, payout, result, now)
        updated = repo.get_payout(conn, payout["id"])

    return {"payout": updated, "state": state, "already_completed": False}


def _apply_gateway_status(conn, config: WorkflowConfig, payout: dict[str, Any], result: ProviderResult, now: datetime) -> str:
    if result.status == "SUCCESS":
        if not _complete(conn, config, payout, result, now):
            latest = repo.get_payout(conn, payout["id"])
            if latest["status"] != PayoutStatus.COMPLETED.value:
                raise InvalidTransition("payout", latest["status"], PayoutStatus.COMPLETED.value)
        return VerifyState.VERIFIED.value

    if result.status == "FAILED":
        _fail(conn, payout, result, reason=result.error or "Gateway reported transfer failed")
        return VerifyState.FAILED.value

    return VerifyState.PENDING.value


# ==========================================================
# Verify / reconcile
# ==========================================================

def verify_payout(
    config: WorkflowConfig,
    provider: TransferProvider,
    *,
    payout_id: UUID,
    actor: Optional[Actor] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Ask the gateway where the transfer stands and sync our status.
    Never completes a payout the gateway has not confirmed.
    """
    if actor is not None:
        _require_admin(actor)

    with get_conn() as conn:
        payout = repo.get_payout(conn, payout_id)
    if not payout:
        raise NotFound("Payout not found", code="PAYOUT_NOT_FOUND")

    status = payout["status"]
    if status == PayoutStatus.COMPLETED.value:
        return {"payout": payout, "state": VerifyState.VERIFIED.value}
    if status == PayoutStatus.FAILED.value:
        return {"payout": payout, "state": VerifyState.FAILED.value}
    if status == PayoutStatus.PENDING.value or not payout["reference"]:
        return {"payout": payout, "state": VerifyState.PENDING.value}

    try:
        result = provider.fetch_transfer_status(reference=payout["reference"], transfer_code=payout["transfer_code"])
    except ExternalProviderError as e:
        with get_conn() as conn:
            repo.record_error(conn, payout_id=payout["id"], error=e.message, provider_response=e.provider_response)
        raise

    now = now or utcnow()
    with get_conn() as conn:
        state = _apply_gateway_status(conn, config, payout, result, now)
        updated = repo.get_payout(conn, payout["id"])

    logger.info("payout verified payout=%s gateway=%s state=%s", payout_id, result.status, state)
    return {"payout": updated, "state": state}
