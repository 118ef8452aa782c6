# app/disputes/repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, select, update

from app.disputes.state_machine import assert_transition
from app.store.schema import bookings, disputes, users, utcnow


def get_dispute(conn, dispute_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(select(disputes).where(disputes.c.id == dispute_id)).mappings().first()
    return dict(row) if row else None


def get_dispute_detail(conn, dispute_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(
        select(
            disputes,
            bookings.c.event_title,
            bookings.c.event_date,
            bookings.c.amount_cents.label("booking_amount_cents"),
            bookings.c.status.label("booking_status"),
            bookings.c.organizer_id,
            bookings.c.talent_id,
            users.c.name.label("raised_by_name"),
            users.c.role.label("raised_by_role"),
        )
        .join(bookings, bookings.c.id == disputes.c.booking_id)
        .join(users, users.c.id == disputes.c.raised_by_id)
        .where(disputes.c.id == dispute_id)
    ).mappings().first()
    return dict(row) if row else None


def insert_dispute(conn, *, booking_id: UUID, raised_by_id: UUID, reason: str, explanation: str) -> UUID:
    dispute_id = uuid.uuid4()
    now = utcnow()
    conn.execute(
        insert(disputes).values(
            id=dispute_id,
            booking_id=booking_id,
            raised_by_id=raised_by_id,
            reason=reason,
            explanation=explanation,
            status="OPEN",
            created_at=now,
            updated_at=now,
        )
    )
    return dispute_id


def update_status(
    conn,
    *,
    dispute_id: UUID,
    from_status: str,
    new_status: str,
    resolution_notes: Optional[str] = None,
    refund_cents: Optional[int] = None,
    payout_cents: Optional[int] = None,
    resolution_fee_cents: Optional[int] = None,
    provider_refund_id: Optional[str] = None,
    resolved_by_id: Optional[UUID] = None,
    resolved_at: Optional[datetime] = None,
) -> bool:
    assert_transition(from_status, new_status)

    values: dict[str, Any] = {"status": new_status, "updated_at": utcnow()}
    for key, val in (
        ("resolution_notes", resolution_notes),
        ("refund_cents", refund_cents),
        ("payout_cents", payout_cents),
        ("resolution_fee_cents", resolution_fee_cents),
        ("provider_refund_id", provider_refund_id),
        ("resolved_by_id", resolved_by_id),
        ("resolved_at", resolved_at),
    ):
        if val is not None:
            values[key] = val

    res = conn.execute(
        update(disputes)
        .where(disputes.c.id == dispute_id, disputes.c.status == from_status)
        .values(**values)
    )
    return res.rowcount == 1


def list_disputes(conn, *, status: Optional[str] = None, limit: int = 100) -> list[dict[str, Any]]:
    stmt = (
        select(
            disputes,
            bookings.c.event_title,
            bookings.c.amount_cents.label("booking_amount_cents"),
        )
        .join(bookings, bookings.c.id == disputes.c.booking_id)
    )
    if status:
        stmt = stmt.where(disputes.c.status == status)
    rows = conn.execute(stmt.order_by(disputes.c.created_at.desc()).limit(limit)).mappings().all()
    return [dict(r) for r in rows]


def set_provider_refund_id(conn, dispute_id: UUID, refund_id: str) -> None:
    conn.execute(
        update(disputes).where(disputes.c.id == dispute_id).values(provider_refund_id=refund_id, updated_at=utcnow())
    )
