# app/referrals/repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from app.referrals.model import ReferralStatus, RewardStatus
from app.referrals.state_machine import assert_reward_transition, assert_transition
from app.store.schema import referrals, users, utcnow
from services.db_errors import raise_for_db_error


def get_referral(conn, referral_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(select(referrals).where(referrals.c.id == referral_id)).mappings().first()
    return dict(row) if row else None


def get_pending_for_referred(conn, referred_id: UUID, *, created_after: datetime) -> dict[str, Any] | None:
    row = conn.execute(
        select(referrals).where(
            referrals.c.referred_id == referred_id,
            referrals.c.status == ReferralStatus.PENDING.value,
            referrals.c.reward_status == RewardStatus.PENDING.value,
            referrals.c.created_at >= created_after,
        )
    ).mappings().first()
    return dict(row) if row else None


def insert_referral(conn, *, referrer_id: UUID, referred_id: UUID, referral_code: str) -> UUID:
    referral_id = uuid.uuid4()
    try:
        with conn.begin_nested():
            conn.execute(
                insert(referrals).values(
                    id=referral_id,
                    referrer_id=referrer_id,
                    referred_id=referred_id,
                    referral_code=referral_code,
                    status=ReferralStatus.PENDING.value,
                    reward_status=RewardStatus.PENDING.value,
                    created_at=utcnow(),
                )
            )
    except IntegrityError as e:
        raise_for_db_error(e)
    return referral_id


def mark_converted(
    conn,
    *,
    referral_id: UUID,
    conversion_type: str,
    booking_id: Optional[UUID],
    referrer_reward_cents: int,
    referred_reward_cents: int,
    converted_at: datetime,
) -> bool:
    """PENDING -> CONVERTED. Only the first caller gets True."""
    assert_transition(ReferralStatus.PENDING.value, ReferralStatus.CONVERTED.value)
    res = conn.execute(
        update(referrals)
        .where(referrals.c.id == referral_id, referrals.c.status == ReferralStatus.PENDING.value)
        .values(
            status=ReferralStatus.CONVERTED.value,
            conversion_type=conversion_type,
            conversion_booking_id=booking_id,
            referrer_reward_cents=referrer_reward_cents,
            referred_reward_cents=referred_reward_cents,
            converted_at=converted_at,
        )
    )
    return res.rowcount == 1


def set_reward_status(
    conn,
    *,
    referral_id: UUID,
    new_status: str,
    failure_reason: Optional[str] = None,
    credited_at: Optional[datetime] = None,
) -> bool:
    """PENDING -> CREDITED | FAILED on a converted referral."""
    assert_reward_transition(RewardStatus.PENDING.value, new_status)
    values: dict[str, Any] = {"reward_status": new_status}
    if failure_reason is not None:
        values["reward_failure_reason"] = failure_reason[:1000]
    if credited_at is not None:
        values["reward_credited_at"] = credited_at
    res = conn.execute(
        update(referrals)
        .where(
            referrals.c.id == referral_id,
            referrals.c.status == ReferralStatus.CONVERTED.value,
            referrals.c.reward_status == RewardStatus.PENDING.value,
        )
        .values(**values)
    )
    return res.rowcount == 1


def list_uncredited_ids(conn, *, limit: int) -> list[UUID]:
    rows = conn.execute(
        select(referrals.c.id)
        .where(
            referrals.c.status == ReferralStatus.CONVERTED.value,
            referrals.c.reward_status == RewardStatus.PENDING.value,
        )
        .order_by(referrals.c.converted_at)
        .limit(limit)
    ).all()
    return [r[0] for r in rows]


def expire_pending(conn, *, created_before: datetime) -> int:
    assert_transition(ReferralStatus.PENDING.value, ReferralStatus.EXPIRED.value)
    res = conn.execute(
        update(referrals)
        .where(referrals.c.status == ReferralStatus.PENDING.value, referrals.c.created_at < created_before)
        .values(status=ReferralStatus.EXPIRED.value)
    )
    return int(res.rowcount or 0)


def list_for_referrer(conn, referrer_id: UUID) -> list[dict[str, Any]]:
    rows = conn.execute(
        select(
            referrals,
            users.c.name.label("referred_name"),
            users.c.email.label("referred_email"),
            users.c.created_at.label("referred_joined_at"),
        )
        .join(users, users.c.id == referrals.c.referred_id)
        .where(referrals.c.referrer_id == referrer_id)
        .order_by(referrals.c.created_at.desc())
    ).mappings().all()
    return [dict(r) for r in rows]
