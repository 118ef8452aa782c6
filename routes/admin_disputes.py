# routes/admin_disputes.py
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.config import WorkflowConfig
from app.disputes import service as disputes_service
from app.providers.base import TransferProvider
from app.users.model import Actor
from db import get_conn
from deps.admin import require_admin
from deps.workflow import get_transfer_provider, get_workflow_config
from schemas import DisputeOut, DisputeResolveRequest

router = APIRouter(prefix="/api/admin/disputes", tags=["admin", "disputes"])


@router.get("", response_model=List[DisputeOut])
def list_disputes(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    _admin: Actor = Depends(require_admin),
):
    with get_conn() as conn:
        return disputes_service.list_disputes(conn, status=status, limit=limit)


@router.get("/{dispute_id}", response_model=DisputeOut)
def get_dispute(dispute_id: UUID, _admin: Actor = Depends(require_admin)):
    with get_conn() as conn:
        return disputes_service.get_dispute(conn, dispute_id)


@router.post("/{dispute_id}/review", response_model=DisputeOut)
def start_review(dispute_id: UUID, admin: Actor = Depends(require_admin)):
    with get_conn() as conn:
        return disputes_service.start_review(conn, dispute_id=dispute_id, actor=admin)


@router.post("/{dispute_id}", response_model=DisputeOut)
def resolve_dispute(
    dispute_id: UUID,
    body: DisputeResolveRequest,
    admin: Actor = Depends(require_admin),
    config: WorkflowConfig = Depends(get_workflow_config),
    provider: TransferProvider = Depends(get_transfer_provider),
):
    with get_conn() as conn:
        return disputes_service.resolve_dispute(
            conn,
            config,
            provider,
            dispute_id=dispute_id,
            actor=admin,
            resolution=body.resolution,
            resolution_notes=body.resolution_notes,
            refund_cents=body.refund_cents,
            payout_cents=body.payout_cents,
        )
