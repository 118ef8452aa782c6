# app/referrals/jobs.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from app.config import WorkflowConfig
from app.errors import WorkflowError
from app.referrals import repository as repo
from app.referrals.model import ReferralStatus, RewardStatus
from app.store.schema import utcnow
from app.users import repository as users_repo
from db import get_conn
from services.notifications import notify
from services.transactions import TransactionType, record_transaction

logger = logging.getLogger("gigsec.referrals.jobs")


class RewardError(WorkflowError):
    code = "REWARD_FAILED"


def _credit_one(conn, config: WorkflowConfig, referral_id: UUID, now: datetime) -> bool:
    referral = repo.get_referral(conn, referral_id)
    if not referral or referral["status"] != ReferralStatus.CONVERTED.value:
        return False
    if referral["reward_status"] != RewardStatus.PENDING.value:
        return False

    for role, user_id, amount in (
        ("referrer", referral["referrer_id"], referral["referrer_reward_cents"]),
        ("referred", referral["referred_id"], referral["referred_reward_cents"]),
    ):
        user = users_repo.get_user(conn, user_id)
        if not user or not user["is_active"]:
            raise RewardError(f"{role} user {user_id} is not active")
        if not amount:
            continue
        record_transaction(
            conn,
            type=TransactionType.REFERRAL_REWARD,
            user_id=user_id,
            amount_cents=int(amount),
            currency=config.currency,
            reference=f"referral:{referral_id}:{role}",
            metadata={"referral_id": str(referral_id), "role": role},
        )
        notify(
            conn,
            user_id=user_id,
            type="REFERRAL_REWARD",
            title="Referral reward credited",
            message=f"{config.currency} {int(amount) / 100:,.2f} referral reward has been credited.",
        )

    return repo.set_reward_status(conn, referral_id=referral_id, new_status=RewardStatus.CREDITED.value, credited_at=now)


def credit_pending_rewards(config: WorkflowConfig, *, batch_size: int = 100, now: Optional[datetime] = None) -> dict:
    """
    Credit CONVERTED referrals whose reward is still PENDING.
    Each referral gets its own transaction; safe to re-run.
    """
    now = now or utcnow()
    with get_conn() as conn:
        ids = repo.list_uncredited_ids(conn, limit=batch_size)

    credited = failed = 0
    for referral_id in ids:
        try:
            with get_conn() as conn:
                if _credit_one(conn, config, referral_id, now):
                    credited += 1
        except WorkflowError as e:
            failed += 1
            logger.warning("referral reward failed referral=%s reason=%s", referral_id, e.message)
            with get_conn() as conn:
                repo.set_reward_status(conn, referral_id=referral_id, new_status=RewardStatus.FAILED.value, failure_reason=e.message)

    logger.info("referral crediting done scanned=%s credited=%s failed=%s", len(ids), credited, failed)
    return {"scanned": len(ids), "credited": credited, "failed": failed}


def expire_stale_referrals(config: WorkflowConfig, *, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    with get_conn() as conn:
        n = repo.expire_pending(conn, created_before=now - config.referral.expiry)
    logger.info("expired %s pending referrals", n)
    return n
