# services/transactions.py
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Optional

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError

from app.store.schema import transactions, utcnow
from services.db_errors import raise_for_db_error


class TransactionType(str, Enum):
    BOOKING_PAYMENT = "BOOKING_PAYMENT"
    TALENT_PAYOUT = "TALENT_PAYOUT"
    REFUND = "REFUND"
    REFERRAL_REWARD = "REFERRAL_REWARD"


def record_transaction(
    conn,
    *,
    type: TransactionType,
    user_id,
    amount_cents: int,
    currency: str,
    reference: str,
    booking_id=None,
    status: str = "COMPLETED",
    metadata: Optional[dict[str, Any]] = None,
) -> uuid.UUID:
    """
    Insert one ledger row. `reference` is unique, so re-recording the same
    money movement raises Conflict(DUPLICATE_REFERENCE) instead of double counting.
    """
    tx_id = uuid.uuid4()
    try:
        with conn.begin_nested():
            conn.execute(
                insert(transactions).values(
                    id=tx_id,
                    type=TransactionType(type).value,
                    status=status,
                    user_id=user_id,
                    booking_id=booking_id,
                    amount_cents=int(amount_cents),
                    currency=currency,
                    reference=reference,
                    metadata=metadata or {},
                    created_at=utcnow(),
                )
            )
    except IntegrityError as e:
        raise_for_db_error(e)
    return tx_id


def get_by_reference(conn, reference: str) -> dict[str, Any] | None:
    row = conn.execute(select(transactions).where(transactions.c.reference == reference)).mappings().first()
    return dict(row) if row else None


def find_for_booking(conn, booking_id, type: TransactionType) -> dict[str, Any] | None:
    row = conn.execute(
        select(transactions)
        .where(transactions.c.booking_id == booking_id, transactions.c.type == TransactionType(type).value)
        .order_by(transactions.c.created_at)
    ).mappings().first()
    return dict(row) if row else None
