# app/bookings/repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, select, update

from app.store.schema import bookings, utcnow


def get_booking(conn, booking_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(select(bookings).where(bookings.c.id == booking_id)).mappings().first()
    return dict(row) if row else None


def insert_booking(
    conn,
    *,
    organizer_id: UUID,
    talent_id: UUID,
    event_title: str,
    event_date: datetime,
    duration_hours: int,
    event_end_at: Optional[datetime],
    amount_cents: int,
    platform_fee_cents: int,
    notes: Optional[str],
) -> UUID:
    booking_id = uuid.uuid4()
    now = utcnow()
    conn.execute(
        insert(bookings).values(
            id=booking_id,
            organizer_id=organizer_id,
            talent_id=talent_id,
            event_title=event_title,
            event_date=event_date,
            duration_hours=duration_hours,
            event_end_at=event_end_at,
            amount_cents=amount_cents,
            platform_fee_cents=platform_fee_cents,
            talent_amount_cents=amount_cents - platform_fee_cents,
            status="PENDING",
            notes=notes,
            is_paid_out=False,
            created_at=now,
            updated_at=now,
        )
    )
    return booking_id


def transition(
    conn,
    *,
    booking_id: UUID,
    from_status: str,
    to_status: str,
    accepted_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
) -> bool:
    """
    UPDATE ... WHERE status = from_status. False means someone else moved
    the booking first and nothing was written.
    """
    values: dict[str, Any] = {"status": to_status, "updated_at": utcnow()}
    if accepted_at is not None:
        values["accepted_at"] = accepted_at
    if completed_at is not None:
        values["completed_at"] = completed_at

    res = conn.execute(
        update(bookings)
        .where(bookings.c.id == booking_id, bookings.c.status == from_status)
        .values(**values)
    )
    return res.rowcount == 1


def mark_paid_out(conn, booking_id: UUID) -> None:
    conn.execute(
        update(bookings).where(bookings.c.id == booking_id).values(is_paid_out=True, updated_at=utcnow())
    )
