# app/bookings/service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from app.bookings import repository as repo
from app.bookings.model import (
    ORGANIZER_DISPUTE_REASONS,
    TALENT_DISPUTE_REASONS,
    BookingAction,
    BookingStatus,
    Effect,
    PaymentState,
)
from app.bookings.state_machine import Decision, decide
from app.config import WorkflowConfig, bps_of
from app.disputes import repository as disputes_repo
from app.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from app.payouts import repository as payouts_repo
from app.providers.base import PaymentVerification, TransferProvider
from app.referrals.service import check_and_process_conversion
from app.store.schema import utcnow
from app.users import repository as users_repo
from app.users.model import Actor, Role
from services.audit_log import write_audit_log
from services.notifications import admin_user_ids, notify, notify_many
from services.transactions import TransactionType, record_transaction

logger = logging.getLogger("gigsec.bookings")


def create_booking(
    conn,
    config: WorkflowConfig,
    *,
    actor: Actor,
    talent_id: UUID,
    event_title: str,
    event_date: datetime,
    duration_hours: int,
    amount_cents: int,
    event_end_at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    if actor.role != Role.ORGANIZER:
        raise Forbidden("Only organizers can create bookings", code="ROLE_NOT_ALLOWED")
    if int(amount_cents) <= 0:
        raise ValidationError("amount_cents must be positive", code="INVALID_AMOUNT")
    if event_end_at is not None and event_end_at <= event_date:
        raise ValidationError("event_end_at must be after event_date", code="INVALID_EVENT_END")

    talent = users_repo.get_user(conn, talent_id)
    if not talent or talent["role"] != Role.TALENT.value or not talent["is_active"]:
        raise NotFound("Talent not found", code="TALENT_NOT_FOUND")

    fee = bps_of(amount_cents, config.platform_fee_bps)
    booking_id = repo.insert_booking(
        conn,
        organizer_id=actor.user_id,
        talent_id=talent_id,
        event_title=event_title.strip(),
        event_date=event_date,
        duration_hours=int(duration_hours),
        event_end_at=event_end_at,
        amount_cents=int(amount_cents),
        platform_fee_cents=fee,
        notes=notes,
    )
    notify(
        conn,
        user_id=talent_id,
        type="BOOKING_REQUEST",
        title="New booking request",
        message=f"You have a new booking request for {event_title.strip()}.",
        booking_id=booking_id,
    )
    logger.info("booking created booking=%s organizer=%s talent=%s", booking_id, actor.user_id, talent_id)
    return repo.get_booking(conn, booking_id)


def get_booking_for(conn, booking_id: UUID, actor: Actor) -> dict[str, Any]:
    booking = repo.get_booking(conn, booking_id)
    if not booking:
        raise NotFound("Booking not found", code="BOOKING_NOT_FOUND")
    if not actor.is_admin and actor.user_id not in (booking["organizer_id"], booking["talent_id"]):
        raise Forbidden("Not a party to this booking", code="NOT_BOOKING_PARTY")
    return booking


def _validate_payload(decision: Decision, actor: Actor, payload: dict[str, Any]) -> None:
    """Payload checks that must pass before the first write."""
    if Effect.RECORD_PAYMENT in decision.effects:
        if not (payload.get("payment_reference") or "").strip():
            raise ValidationError("payment_reference is required", code="PAYMENT_REFERENCE_REQUIRED")

    if Effect.OPEN_DISPUTE in decision.effects:
        reason = (payload.get("reason") or "").strip().upper()
        allowed = ORGANIZER_DISPUTE_REASONS if actor.role == Role.ORGANIZER else TALENT_DISPUTE_REASONS
        if reason not in allowed:
            raise ValidationError(
                f"Invalid dispute reason for {actor.role.value.lower()}: {reason or '<empty>'}",
                code="INVALID_DISPUTE_REASON",
                extra={"allowed": sorted(allowed)},
            )
        if len((payload.get("explanation") or "").strip()) < 10:
            raise ValidationError("Explanation must be at least 10 characters", code="EXPLANATION_TOO_SHORT")


def _verify_payment(
    provider: Optional[TransferProvider],
    config: WorkflowConfig,
    booking: dict[str, Any],
    reference: str,
) -> PaymentVerification:
    """
    Ask the gateway about the organizer's charge. A FAILED charge, or a settled
    one that does not match the booking, is rejected before any write.
    """
    if provider is None:
        raise RuntimeError("payment capture needs a payment gateway")

    verification = provider.verify_payment(reference)
    logger.info(
        "booking payment verify booking=%s reference=%s gateway_status=%s",
        booking["id"],
        reference,
        verification.status,
    )

    if verification.status == "FAILED":
        raise ValidationError(
            "Payment could not be verified with the gateway",
            code="PAYMENT_NOT_VERIFIED",
            extra={"payment_state": PaymentState.FAILED.value, "payment_reference": reference},
        )
    if verification.status == "SUCCESS":
        if verification.amount_cents != int(booking["amount_cents"]):
            raise ValidationError(
                "Paid amount does not match the booking amount",
                code="PAYMENT_AMOUNT_MISMATCH",
                extra={
                    "payment_state": PaymentState.FAILED.value,
                    "expected_cents": int(booking["amount_cents"]),
                    "paid_cents": verification.amount_cents,
                },
            )
        if verification.currency and verification.currency.upper() != config.currency:
            raise ValidationError(
                "Payment currency does not match",
                code="PAYMENT_CURRENCY_MISMATCH",
                extra={"payment_state": PaymentState.FAILED.value, "currency": verification.currency},
            )
    return verification


def transition_booking(
    conn,
    config: WorkflowConfig,
    *,
    booking: dict[str, Any],
    action: BookingAction,
    actor: Actor,
    payload: Optional[dict[str, Any]] = None,
    provider: Optional[TransferProvider] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Validate and apply one booking action inside the caller's transaction.
    Returns {"booking": ..., plus effect outputs (payment_transaction_id, payout, dispute_id)}.

    `pay` is only applied once the gateway confirms the charge; while it is
    still settling nothing is written and payment_state is "pending".
    """
    now = now or utcnow()
    payload = payload or {}

    payout = payouts_repo.get_by_booking(conn, booking["id"])
    decision = decide(
        booking,
        action,
        actor,
        config=config,
        now=now,
        payout_status=payout["status"] if payout else None,
    )
    _validate_payload(decision, actor, payload)

    verification = None
    if Effect.RECORD_PAYMENT in decision.effects:
        verification = _verify_payment(provider, config, booking, payload["payment_reference"].strip())
        if verification.status == "PENDING":
            return {"booking": booking, "payment_state": PaymentState.PENDING.value}

    won = repo.transition(
        conn,
        booking_id=booking["id"],
        from_status=decision.current.value,
        to_status=decision.new_status.value,
        accepted_at=now if Effect.STAMP_ACCEPTED in decision.effects else None,
        completed_at=now if Effect.STAMP_COMPLETED in decision.effects else None,
    )
    if not won:
        latest = repo.get_booking(conn, booking["id"]) or booking
        raise InvalidTransition(
            "booking",
            latest["status"],
            decision.new_status.value,
            message="Booking was changed by another request",
        )

    result = _dispatch(conn, config, booking, decision, actor, payload, now)

    write_audit_log(
        conn,
        actor_user_id=actor.user_id,
        action=f"BOOKING_{decision.action.value.upper()}",
        target_id=str(booking["id"]),
        metadata={"from": decision.current.value, "to": decision.new_status.value},
    )
    logger.info(
        "booking transition booking=%s %s -> %s action=%s actor=%s",
        booking["id"],
        decision.current.value,
        decision.new_status.value,
        decision.action.value,
        actor.user_id,
    )

    if verification is not None:
        result["payment_state"] = PaymentState.VERIFIED.value
    result["booking"] = repo.get_booking(conn, booking["id"])
    return result


def apply_action(
    conn,
    config: WorkflowConfig,
    *,
    booking_id: UUID,
    action: BookingAction,
    actor: Actor,
    payload: Optional[dict[str, Any]] = None,
    provider: Optional[TransferProvider] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    if BookingAction(action) in (BookingAction.RESOLVE_CANCEL, BookingAction.RESOLVE_COMPLETE):
        raise Forbidden("Disputed bookings are settled through dispute resolution", code="USE_DISPUTE_RESOLUTION")

    booking = get_booking_for(conn, booking_id, actor)
    return transition_booking(
        conn, config, booking=booking, action=action, actor=actor, payload=payload, provider=provider, now=now
    )


def _dispatch(
    conn,
    config: WorkflowConfig,
    booking: dict[str, Any],
    decision: Decision,
    actor: Actor,
    payload: dict[str, Any],
    now: datetime,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    booking_id = booking["id"]
    title = booking["event_title"]
    new_status = decision.new_status

    for effect in decision.effects:
        if effect == Effect.RECORD_PAYMENT:
            out["payment_transaction_id"] = record_transaction(
                conn,
                type=TransactionType.BOOKING_PAYMENT,
                user_id=booking["organizer_id"],
                booking_id=booking_id,
                amount_cents=booking["amount_cents"],
                currency=config.currency,
                reference=payload["payment_reference"].strip(),
                metadata={"platform_fee_cents": booking["platform_fee_cents"]},
            )

        elif effect == Effect.CHECK_REFERRALS:
            for party in (booking["organizer_id"], booking["talent_id"]):
                check_and_process_conversion(
                    conn,
                    config,
                    user_id=party,
                    conversion_type="booking_payment",
                    booking_id=booking_id,
                    now=now,
                )

        elif effect == Effect.CREATE_PAYOUT:
            out["payout"] = payouts_repo.create_pending(
                conn,
                booking_id=booking_id,
                talent_id=booking["talent_id"],
                amount_cents=booking["talent_amount_cents"],
            )

        elif effect == Effect.OPEN_DISPUTE:
            out["dispute_id"] = disputes_repo.insert_dispute(
                conn,
                booking_id=booking_id,
                raised_by_id=actor.user_id,
                reason=payload["reason"].strip().upper(),
                explanation=payload["explanation"].strip(),
            )

        elif effect == Effect.NOTIFY_ORGANIZER:
            notify(
                conn,
                user_id=booking["organizer_id"],
                type=f"BOOKING_{new_status.value}",
                title=f"Booking {new_status.value.lower()}",
                message=f"Your booking for {title} was {new_status.value.lower()}.",
                booking_id=booking_id,
            )

        elif effect == Effect.NOTIFY_TALENT:
            notify(
                conn,
                user_id=booking["talent_id"],
                type=f"BOOKING_{new_status.value}",
                title=f"Booking {new_status.value.lower().replace('_', ' ')}",
                message=f"The booking for {title} is now {new_status.value.lower().replace('_', ' ')}.",
                booking_id=booking_id,
            )

        elif effect == Effect.NOTIFY_COUNTERPARTY:
            other = booking["talent_id"] if actor.user_id == booking["organizer_id"] else booking["organizer_id"]
            notify(
                conn,
                user_id=other,
                type="DISPUTE_RAISED",
                title="Dispute raised",
                message=f"A dispute was raised on the booking for {title}.",
                booking_id=booking_id,
            )

        elif effect == Effect.NOTIFY_ADMINS:
            notify_many(
                conn,
                admin_user_ids(conn),
                type="DISPUTE_RAISED",
                title="New dispute",
                message=f"A dispute needs review for booking {booking_id}.",
                booking_id=booking_id,
            )

    # admin cancels also reach the organizer
    if decision.action == BookingAction.CANCEL and actor.is_admin:
        notify(
            conn,
            user_id=booking["organizer_id"],
            type="BOOKING_CANCELLED",
            title="Booking cancelled",
            message=f"The booking for {title} was cancelled by an administrator.",
            booking_id=booking_id,
        )

    return out
