# routes/admin_payouts.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.config import WorkflowConfig
from app.payouts import service as payouts_service
from app.providers.base import TransferProvider
from app.users.model import Actor
from db import get_conn
from deps.admin import require_admin
from deps.workflow import get_transfer_provider, get_workflow_config
from schemas import (
    PayoutFinalizeRequest,
    PayoutInitiateRequest,
    PayoutInitiateResponse,
    PayoutStateResponse,
)

router = APIRouter(prefix="/api/admin/payouts", tags=["admin", "payouts"])


@router.get("/process")
def list_payouts(_admin: Actor = Depends(require_admin)):
    with get_conn() as conn:
        return payouts_service.list_payouts(conn)


@router.post("/process", response_model=PayoutInitiateResponse)
def initiate_payout(
    body: PayoutInitiateRequest,
    admin: Actor = Depends(require_admin),
    config: WorkflowConfig = Depends(get_workflow_config),
    provider: TransferProvider = Depends(get_transfer_provider),
):
    res = payouts_service.initiate_payout(config, provider, booking_id=body.booking_id, actor=admin)
    return {**res, "transfer_code": res["payout"]["transfer_code"]}


@router.patch("/process", response_model=PayoutStateResponse)
def finalize_payout(
    body: PayoutFinalizeRequest,
    admin: Actor = Depends(require_admin),
    config: WorkflowConfig = Depends(get_workflow_config),
    provider: TransferProvider = Depends(get_transfer_provider),
):
    return payouts_service.finalize_payout(
        config, provider, transfer_code=body.transfer_code, otp=body.otp, actor=admin
    )


@router.post("/{payout_id}/verify", response_model=PayoutStateResponse)
def verify_payout(
    payout_id: UUID,
    admin: Actor = Depends(require_admin),
    config: WorkflowConfig = Depends(get_workflow_config),
    provider: TransferProvider = Depends(get_transfer_provider),
):
    return payouts_service.verify_payout(config, provider, payout_id=payout_id, actor=admin)
