from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import and_, select

from app.config import WorkflowConfig, load_workflow_config
from app.errors import ExternalProviderError
from app.payouts import repository as payouts_repo
from app.payouts.service import verify_payout
from app.providers.base import TransferProvider
from app.providers.factory import get_provider
from app.store.schema import payouts, transactions
from db import get_conn

logger = logging.getLogger("gigsec.reconcile")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _completed_missing_ledger(conn, *, since: datetime) -> list[dict[str, Any]]:
    # COMPLETED payouts must have exactly one TALENT_PAYOUT row (reference payout:<id>)
    rows = conn.execute(
        select(payouts.c.id, payouts.c.booking_id, payouts.c.amount_cents)
        .where(payouts.c.status == "COMPLETED", payouts.c.updated_at >= since)
        .where(
            ~select(transactions.c.id)
            .where(
                and_(
                    transactions.c.type == "TALENT_PAYOUT",
                    transactions.c.booking_id == payouts.c.booking_id,
                )
            )
            .exists()
        )
    ).mappings().all()
    return [dict(r) for r in rows]


def run_reconcile(
    *,
    config: Optional[WorkflowConfig] = None,
    provider: Optional[TransferProvider] = None,
    batch_size: int = 100,
    lookback_minutes: int = 240,
) -> dict[str, Any]:
    """
    Sync PROCESSING payouts with the gateway and flag COMPLETED payouts
    without a ledger row. Safe to re-run.
    """
    config = config or load_workflow_config()
    provider = provider or get_provider()
    run_at = _utcnow()

    items: list[dict[str, Any]] = []
    summary = {
        "processing_checked": 0,
        "completed": 0,
        "failed": 0,
        "still_pending": 0,
        "provider_errors": 0,
        "confirmed_missing_ledger": 0,
    }

    with get_conn() as conn:
        ids = payouts_repo.list_processing_ids(conn, limit=batch_size)
    summary["processing_checked"] = len(ids)

    for payout_id in ids:
        try:
            res = verify_payout(config, provider, payout_id=payout_id)
        except ExternalProviderError as e:
            summary["provider_errors"] += 1
            items.append({"category": "provider_error", "payout_id": str(payout_id), "error": e.message})
            continue

        state = res["state"]
        if state == "verified":
            summary["completed"] += 1
        elif state == "failed":
            summary["failed"] += 1
        else:
            summary["still_pending"] += 1
        items.append({"category": "status_sync", "payout_id": str(payout_id), "state": state})

    with get_conn() as conn:
        missing = _completed_missing_ledger(conn, since=run_at - timedelta(minutes=lookback_minutes))
    for row in missing:
        summary["confirmed_missing_ledger"] += 1
        items.append(
            {
                "category": "confirmed_missing_ledger",
                "payout_id": str(row["id"]),
                "booking_id": str(row["booking_id"]),
                "amount_cents": row["amount_cents"],
            }
        )

    logger.info("reconcile done %s", summary)
    return {"run_at": run_at.isoformat(), "summary": summary, "items": items}
