# services/notifications.py
from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import insert, select

from app.store.schema import notifications, users, utcnow

logger = logging.getLogger("gigsec.notifications")


def notify(
    conn,
    *,
    user_id,
    type: str,
    title: str,
    message: str,
    booking_id=None,
) -> None:
    """
    Notifications are rows written inside the caller's transaction,
    so a rolled-back transition never leaves one behind.
    """
    conn.execute(
        insert(notifications).values(
            id=uuid.uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            booking_id=booking_id,
            created_at=utcnow(),
        )
    )
    logger.info("notification queued type=%s user=%s booking=%s", type, user_id, booking_id)


def admin_user_ids(conn) -> list[uuid.UUID]:
    rows = conn.execute(
        select(users.c.id).where(users.c.role == "ADMIN", users.c.is_active.is_(True))
    ).all()
    return [r[0] for r in rows]


def notify_many(conn, user_ids: Iterable, *, type: str, title: str, message: str, booking_id: Optional[uuid.UUID] = None) -> None:
    for uid in user_ids:
        notify(conn, user_id=uid, type=type, title=title, message=message, booking_id=booking_id)
