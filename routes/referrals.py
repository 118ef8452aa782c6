# routes/referrals.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.config import WorkflowConfig
from app.referrals import service as referrals_service
from app.users.model import Actor
from db import get_conn
from deps.auth import get_current_user
from deps.workflow import get_workflow_config
from schemas import ReferralStatsResponse, ReferralValidateRequest, ReferralValidateResponse

router = APIRouter(prefix="/api/referrals", tags=["referrals"])


@router.post("/validate", response_model=ReferralValidateResponse)
def validate_referral_code(body: ReferralValidateRequest, config: WorkflowConfig = Depends(get_workflow_config)):
    with get_conn() as conn:
        return referrals_service.validate_code(conn, config, body.referral_code)


@router.get("", response_model=ReferralStatsResponse)
def referral_stats(user: Actor = Depends(get_current_user)):
    with get_conn() as conn:
        return referrals_service.get_stats(conn, user.user_id)
