# routes/talent_bookings.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.bookings import service as bookings_service
from app.bookings.model import BookingAction
from app.config import WorkflowConfig
from app.users.model import Actor, Role
from db import get_conn
from deps.auth import require_role
from deps.workflow import get_workflow_config
from schemas import BookingActionResponse, TalentBookingUpdate

router = APIRouter(prefix="/api/talent/bookings", tags=["talent"])

_STATUS_ACTION = {
    "ACCEPTED": BookingAction.ACCEPT,
    "DECLINED": BookingAction.DECLINE,
}


@router.patch("/{booking_id}", response_model=BookingActionResponse)
def update_booking_status(
    booking_id: UUID,
    body: TalentBookingUpdate,
    user: Actor = Depends(require_role(Role.TALENT)),
    config: WorkflowConfig = Depends(get_workflow_config),
):
    with get_conn() as conn:
        return bookings_service.apply_action(
            conn,
            config,
            booking_id=booking_id,
            action=_STATUS_ACTION[body.status],
            actor=user,
            payload={"notes": body.notes},
        )
