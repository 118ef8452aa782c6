# app/disputes/state_machine.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.config import WorkflowConfig, bps_of
from app.disputes.model import RESOLVED_STATUS, DisputeStatus, ResolutionType
from app.errors import InvalidTransition, ValidationError

_RESOLVED = {
    DisputeStatus.RESOLVED_ORGANIZER_FAVOR,
    DisputeStatus.RESOLVED_TALENT_FAVOR,
    DisputeStatus.RESOLVED_PARTIAL,
}

ALLOWED: dict[DisputeStatus, set[DisputeStatus]] = {
    DisputeStatus.OPEN: {DisputeStatus.UNDER_REVIEW} | _RESOLVED,
    DisputeStatus.UNDER_REVIEW: set(_RESOLVED),
    DisputeStatus.RESOLVED_ORGANIZER_FAVOR: set(),
    DisputeStatus.RESOLVED_TALENT_FAVOR: set(),
    DisputeStatus.RESOLVED_PARTIAL: set(),
}


def assert_transition(old: str, new: str) -> None:
    if DisputeStatus(new) not in ALLOWED[DisputeStatus(old)]:
        raise InvalidTransition("dispute", old, new)


@dataclass(frozen=True)
class Resolution:
    type: ResolutionType
    status: DisputeStatus
    refund_cents: int
    payout_cents: int  # net of the resolution fee
    fee_cents: int
    cancels_booking: bool


def compute_resolution(
    resolution_type: str,
    *,
    booking_amount_cents: int,
    config: WorkflowConfig,
    refund_cents: Optional[int] = None,
    payout_cents: Optional[int] = None,
) -> Resolution:
    """
    Money split for a dispute outcome. Pure; every rejection happens
    here, before anything is written.
    """
    try:
        rtype = ResolutionType(resolution_type)
    except ValueError:
        raise ValidationError(f"Unknown resolution type: {resolution_type}", code="INVALID_RESOLUTION_TYPE")

    amount = int(booking_amount_cents)

    if rtype == ResolutionType.ORGANIZER_FAVOR:
        refund, payout, fee = amount, 0, 0

    elif rtype == ResolutionType.TALENT_FAVOR:
        fee = bps_of(amount, config.dispute_resolution_fee_bps)
        refund, payout = 0, amount - fee

    else:
        if refund_cents is None and payout_cents is None:
            raise ValidationError(
                "Partial resolution requires a refund or payout amount", code="PARTIAL_AMOUNTS_REQUIRED"
            )
        refund = int(refund_cents or 0)
        payout = int(payout_cents or 0)
        if refund < 0 or payout < 0:
            raise ValidationError("Amounts must not be negative", code="NEGATIVE_AMOUNT")
        if refund + payout > amount:
            raise ValidationError(
                f"Refund ({refund}) plus payout ({payout}) exceeds booking amount ({amount})",
                code="RESOLUTION_EXCEEDS_AMOUNT",
                extra={"booking_amount_cents": amount},
            )
        fee = bps_of(payout, config.dispute_resolution_fee_bps)
        payout -= fee

    return Resolution(
        type=rtype,
        status=RESOLVED_STATUS[rtype],
        refund_cents=refund,
        payout_cents=payout,
        fee_cents=fee,
        cancels_booking=(rtype == ResolutionType.ORGANIZER_FAVOR),
    )
