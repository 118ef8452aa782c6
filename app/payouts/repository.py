# app/payouts/repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from app.payouts.state_machine import assert_processing_invariant, assert_transition
from app.store.schema import bookings, payouts, users, utcnow

_UNSET = object()


def get_payout(conn, payout_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(select(payouts).where(payouts.c.id == payout_id)).mappings().first()
    return dict(row) if row else None


def get_by_booking(conn, booking_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(select(payouts).where(payouts.c.booking_id == booking_id)).mappings().first()
    return dict(row) if row else None


def get_by_transfer_code(conn, transfer_code: str) -> dict[str, Any] | None:
    row = conn.execute(select(payouts).where(payouts.c.transfer_code == transfer_code)).mappings().first()
    return dict(row) if row else None


def create_pending(conn, *, booking_id: UUID, talent_id: UUID, amount_cents: int) -> dict[str, Any]:
    """
    One payout per booking. A concurrent creator loses on the unique
    booking_id and gets the winner's row back.
    """
    existing = get_by_booking(conn, booking_id)
    if existing:
        return existing

    now = utcnow()
    try:
        with conn.begin_nested():
            conn.execute(
                insert(payouts).values(
                    id=uuid.uuid4(),
                    booking_id=booking_id,
                    talent_id=talent_id,
                    amount_cents=int(amount_cents),
                    status="PENDING",
                    attempt_count=0,
                    created_at=now,
                    updated_at=now,
                )
            )
    except IntegrityError:
        pass
    return get_by_booking(conn, booking_id)


def update_status(
    conn,
    *,
    payout_id: UUID,
    new_status: str,
    from_status: Optional[str] = None,
    reference: Optional[str] = None,
    transfer_code: Optional[str] = None,
    mpesa_number: Optional[str] = None,
    provider_response: Optional[dict[str, Any]] = None,
    last_error: Any = _UNSET,
    attempt_count: Optional[int] = None,
    processed_at: Optional[datetime] = None,
    amount_cents: Optional[int] = None,
    expected_attempt_count: Optional[int] = None,
    expected_no_transfer: bool = False,
) -> bool:
    """
    Conditional update. With `from_status` the row only changes if it is still
    in that status; the return value says whether this caller won.
    `expected_attempt_count` and `expected_no_transfer` pin the row version a
    retry claim was decided on.
    None arguments leave the column untouched; `last_error` is cleared by passing None.
    """
    if from_status is not None:
        assert_transition(from_status, new_status)
    if from_status == "PENDING":
        assert_processing_invariant(new_status, reference)

    values: dict[str, Any] = {"status": new_status, "updated_at": utcnow()}
    if reference is not None:
        values["reference"] = reference
    if transfer_code is not None:
        values["transfer_code"] = transfer_code
    if mpesa_number is not None:
        values["mpesa_number"] = mpesa_number
    if provider_response is not None:
        values["provider_response"] = provider_response
    if last_error is not _UNSET:
        values["last_error"] = last_error
    if attempt_count is not None:
        values["attempt_count"] = attempt_count
    if processed_at is not None:
        values["processed_at"] = processed_at
    if amount_cents is not None:
        values["amount_cents"] = int(amount_cents)

    stmt = update(payouts).where(payouts.c.id == payout_id)
    if from_status is not None:
        stmt = stmt.where(payouts.c.status == from_status)
    if expected_attempt_count is not None:
        stmt = stmt.where(payouts.c.attempt_count == expected_attempt_count)
    if expected_no_transfer:
        stmt = stmt.where(payouts.c.transfer_code.is_(None))

    res = conn.execute(stmt.values(**values))
    return res.rowcount == 1


def record_error(conn, *, payout_id: UUID, error: str, provider_response: Optional[dict[str, Any]] = None) -> None:
    values: dict[str, Any] = {"last_error": error[:1000], "updated_at": utcnow()}
    if provider_response is not None:
        values["provider_response"] = provider_response
    conn.execute(update(payouts).where(payouts.c.id == payout_id).values(**values))


def list_by_status(conn, status: str, *, limit: int = 100) -> list[dict[str, Any]]:
    rows = conn.execute(
        select(
            payouts,
            bookings.c.event_title,
            bookings.c.event_date,
            users.c.name.label("talent_name"),
            users.c.email.label("talent_email"),
        )
        .join(bookings, bookings.c.id == payouts.c.booking_id)
        .join(users, users.c.id == payouts.c.talent_id)
        .where(payouts.c.status == status)
        .order_by(payouts.c.created_at)
        .limit(limit)
    ).mappings().all()
    return [dict(r) for r in rows]


def list_processing_ids(conn, *, limit: int) -> list[UUID]:
    rows = conn.execute(
        select(payouts.c.id)
        .where(payouts.c.status == "PROCESSING")
        .order_by(payouts.c.updated_at)
        .limit(limit)
    ).all()
    return [r[0] for r in rows]


def set_pending_amount(conn, *, payout_id: UUID, amount_cents: int) -> bool:
    res = conn.execute(
        update(payouts)
        .where(payouts.c.id == payout_id, payouts.c.status == "PENDING")
        .values(amount_cents=int(amount_cents), updated_at=utcnow())
    )
    return res.rowcount == 1
