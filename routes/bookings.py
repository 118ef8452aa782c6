# routes/bookings.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.bookings import service as bookings_service
from app.bookings.model import BookingAction
from app.config import WorkflowConfig
from app.users.model import Actor
from db import get_conn
from deps.auth import get_current_user
from deps.workflow import get_workflow_config
from schemas import BookingActionResponse, BookingCreateRequest, BookingOut, DisputeCreateRequest

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.post("", response_model=BookingOut, status_code=201)
def create_booking(
    body: BookingCreateRequest,
    user: Actor = Depends(get_current_user),
    config: WorkflowConfig = Depends(get_workflow_config),
):
    with get_conn() as conn:
        return bookings_service.create_booking(
            conn,
            config,
            actor=user,
            talent_id=body.talent_id,
            event_title=body.event_title,
            event_date=body.event_date,
            duration_hours=body.duration_hours,
            event_end_at=body.event_end_at,
            amount_cents=body.amount_cents,
            notes=body.notes,
        )


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: UUID, user: Actor = Depends(get_current_user)):
    with get_conn() as conn:
        return bookings_service.get_booking_for(conn, booking_id, user)


@router.post("/{booking_id}/dispute", response_model=BookingActionResponse, status_code=201)
def raise_dispute(
    booking_id: UUID,
    body: DisputeCreateRequest,
    user: Actor = Depends(get_current_user),
    config: WorkflowConfig = Depends(get_workflow_config),
):
    with get_conn() as conn:
        return bookings_service.apply_action(
            conn,
            config,
            booking_id=booking_id,
            action=BookingAction.DISPUTE,
            actor=user,
            payload={"reason": body.reason, "explanation": body.explanation},
        )
