# routes/organizer_bookings.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from app.bookings import service as bookings_service
from app.bookings.model import BookingAction, PaymentState
from app.config import WorkflowConfig
from app.providers.base import TransferProvider
from app.users.model import Actor, Role
from db import get_conn
from deps.auth import require_role
from deps.workflow import get_transfer_provider, get_workflow_config
from schemas import BookingActionResponse, OrganizerBookingUpdate

router = APIRouter(prefix="/api/organizer/bookings", tags=["organizer"])

organizer_or_admin = require_role(Role.ORGANIZER, Role.ADMIN)


@router.put("/{booking_id}", response_model=BookingActionResponse)
def update_booking(
    booking_id: UUID,
    body: OrganizerBookingUpdate,
    response: Response,
    user: Actor = Depends(organizer_or_admin),
    config: WorkflowConfig = Depends(get_workflow_config),
    provider: TransferProvider = Depends(get_transfer_provider),
):
    with get_conn() as conn:
        result = bookings_service.apply_action(
            conn,
            config,
            booking_id=booking_id,
            action=BookingAction(body.action),
            actor=user,
            payload={"payment_reference": body.payment_reference, "notes": body.notes},
            provider=provider,
        )
    # charge not settled at the gateway yet; the organizer retries pay later
    if result.get("payment_state") == PaymentState.PENDING.value:
        response.status_code = status.HTTP_202_ACCEPTED
    payout = result.pop("payout", None)
    if payout:
        result["payout_id"] = payout["id"]
    return result


@router.delete("/{booking_id}", response_model=BookingActionResponse)
def cancel_booking(
    booking_id: UUID,
    user: Actor = Depends(organizer_or_admin),
    config: WorkflowConfig = Depends(get_workflow_config),
):
    with get_conn() as conn:
        return bookings_service.apply_action(
            conn, config, booking_id=booking_id, action=BookingAction.CANCEL, actor=user
        )
