# app/disputes/service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from app.bookings import repository as bookings_repo
from app.bookings.model import BookingAction, BookingStatus
from app.bookings.service import transition_booking
from app.config import WorkflowConfig
from app.disputes import repository as repo
from app.disputes.model import OPEN_STATUSES, DisputeStatus
from app.disputes.state_machine import compute_resolution
from app.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from app.payouts import repository as payouts_repo
from app.providers.base import TransferProvider
from app.store.schema import utcnow
from app.users.model import Actor
from services.audit_log import write_audit_log
from services.notifications import notify
from services.transactions import TransactionType, find_for_booking, record_transaction

logger = logging.getLogger("gigsec.disputes")


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise Forbidden("Admin privileges required", code="ADMIN_ONLY")


def get_dispute(conn, dispute_id: UUID) -> dict[str, Any]:
    dispute = repo.get_dispute_detail(conn, dispute_id)
    if not dispute:
        raise NotFound("Dispute not found", code="DISPUTE_NOT_FOUND")
    return dispute


def list_disputes(conn, *, status: Optional[str] = None, limit: int = 100) -> list[dict[str, Any]]:
    if status:
        status = DisputeStatus(status.upper()).value
    return repo.list_disputes(conn, status=status, limit=limit)


def start_review(conn, *, dispute_id: UUID, actor: Actor) -> dict[str, Any]:
    _require_admin(actor)
    dispute = repo.get_dispute(conn, dispute_id)
    if not dispute:
        raise NotFound("Dispute not found", code="DISPUTE_NOT_FOUND")

    if dispute["status"] != DisputeStatus.OPEN.value:
        raise InvalidTransition("dispute", dispute["status"], DisputeStatus.UNDER_REVIEW.value)
    if not repo.update_status(
        conn, dispute_id=dispute_id, from_status=DisputeStatus.OPEN.value, new_status=DisputeStatus.UNDER_REVIEW.value
    ):
        raise InvalidTransition("dispute", DisputeStatus.OPEN.value, DisputeStatus.UNDER_REVIEW.value,
                                message="Dispute was changed by another request")

    write_audit_log(conn, actor_user_id=actor.user_id, action="DISPUTE_REVIEW", target_id=str(dispute_id))
    return get_dispute(conn, dispute_id)


def resolve_dispute(
    conn,
    config: WorkflowConfig,
    provider: TransferProvider,
    *,
    dispute_id: UUID,
    actor: Actor,
    resolution: str,
    resolution_notes: Optional[str],
    refund_cents: Optional[int] = None,
    payout_cents: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Settle a dispute in the caller's transaction.

    Everything is validated before the first write. The gateway refund is
    the only external call; if it raises, the caller's transaction rolls
    back and the dispute stays open.
    """
    _require_admin(actor)
    now = now or utcnow()

    notes = (resolution_notes or "").strip()
    if not notes:
        raise ValidationError("Resolution notes are required", code="RESOLUTION_NOTES_REQUIRED")

    dispute = repo.get_dispute(conn, dispute_id)
    if not dispute:
        raise NotFound("Dispute not found", code="DISPUTE_NOT_FOUND")

    booking = bookings_repo.get_booking(conn, dispute["booking_id"])
    if not booking:
        raise NotFound("Booking not found", code="BOOKING_NOT_FOUND")

    outcome = compute_resolution(
        resolution,
        booking_amount_cents=booking["amount_cents"],
        config=config,
        refund_cents=refund_cents,
        payout_cents=payout_cents,
    )

    if dispute["status"] not in OPEN_STATUSES:
        raise InvalidTransition("dispute", dispute["status"], outcome.status.value)
    if booking["status"] != BookingStatus.DISPUTED.value:
        raise InvalidTransition("booking", booking["status"], "CANCELLED" if outcome.cancels_booking else "COMPLETED")

    payment = None
    if outcome.refund_cents > 0:
        payment = find_for_booking(conn, booking["id"], TransactionType.BOOKING_PAYMENT)
        if not payment:
            raise ValidationError("No captured payment to refund", code="NO_PAYMENT_TO_REFUND")

    payout = payouts_repo.get_by_booking(conn, booking["id"])
    if payout and payout["status"] != "PENDING":
        raise InvalidTransition("payout", payout["status"], "PENDING", message="Payout already released for this booking")

    # ---- writes ----
    if not repo.update_status(
        conn,
        dispute_id=dispute_id,
        from_status=dispute["status"],
        new_status=outcome.status.value,
        resolution_notes=notes,
        refund_cents=outcome.refund_cents,
        payout_cents=outcome.payout_cents,
        resolution_fee_cents=outcome.fee_cents,
        resolved_by_id=actor.user_id,
        resolved_at=now,
    ):
        raise InvalidTransition("dispute", dispute["status"], outcome.status.value,
                                message="Dispute was changed by another request")

    transition_booking(
        conn,
        config,
        booking=booking,
        action=BookingAction.RESOLVE_CANCEL if outcome.cancels_booking else BookingAction.RESOLVE_COMPLETE,
        actor=actor,
        now=now,
    )

    if outcome.payout_cents > 0:
        if payout is None:
            payouts_repo.create_pending(
                conn, booking_id=booking["id"], talent_id=booking["talent_id"], amount_cents=outcome.payout_cents
            )
        else:
            payouts_repo.set_pending_amount(conn, payout_id=payout["id"], amount_cents=outcome.payout_cents)
    elif payout is not None:
        payouts_repo.update_status(
            conn,
            payout_id=payout["id"],
            from_status="PENDING",
            new_status="FAILED",
            last_error=f"Cancelled by dispute resolution {dispute_id}",
        )

    if outcome.refund_cents > 0:
        record_transaction(
            conn,
            type=TransactionType.REFUND,
            user_id=booking["organizer_id"],
            booking_id=booking["id"],
            amount_cents=outcome.refund_cents,
            currency=config.currency,
            reference=f"refund:{dispute_id}",
            metadata={"dispute_id": str(dispute_id), "payment_reference": payment["reference"]},
        )
        refund = provider.refund_payment(
            payment_reference=payment["reference"],
            amount_cents=outcome.refund_cents,
            currency=config.currency,
            reason=f"Dispute resolution: {notes[:200]}",
        )
        if refund.refund_id:
            repo.set_provider_refund_id(conn, dispute_id, refund.refund_id)

    write_audit_log(
        conn,
        actor_user_id=actor.user_id,
        action="DISPUTE_RESOLVE",
        target_id=str(dispute_id),
        metadata={
            "resolution": outcome.type.value,
            "refund_cents": outcome.refund_cents,
            "payout_cents": outcome.payout_cents,
            "fee_cents": outcome.fee_cents,
        },
    )

    summary = f"Dispute for {booking['event_title']} resolved: {outcome.type.value.replace('_', ' ')}."
    for user_id in (booking["organizer_id"], booking["talent_id"]):
        notify(conn, user_id=user_id, type="DISPUTE_RESOLVED", title="Dispute resolved", message=summary,
               booking_id=booking["id"])

    logger.info(
        "dispute resolved dispute=%s type=%s refund=%s payout=%s",
        dispute_id,
        outcome.type.value,
        outcome.refund_cents,
        outcome.payout_cents,
    )
    return get_dispute(conn, dispute_id)
