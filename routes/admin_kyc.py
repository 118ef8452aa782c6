# routes/admin_kyc.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.kyc import service as kyc_service
from app.users import service as users_service
from app.users.model import Actor
from db import get_conn
from deps.admin import require_admin
from schemas import KycReviewRequest

router = APIRouter(prefix="/api/admin", tags=["admin", "kyc"])


@router.get("/kyc")
def list_submissions(status: Optional[str] = Query(default=None), _admin: Actor = Depends(require_admin)):
    with get_conn() as conn:
        return {"submissions": kyc_service.list_submissions(conn, status=status)}


@router.post("/kyc/{submission_id}/review")
def review_submission(submission_id: UUID, body: KycReviewRequest, admin: Actor = Depends(require_admin)):
    with get_conn() as conn:
        return kyc_service.review(
            conn,
            submission_id=submission_id,
            actor=admin,
            decision=body.decision,
            rejection_reason=body.rejection_reason,
            admin_notes=body.admin_notes,
        )


@router.post("/talents/{talent_id}/mpesa/verify")
def verify_mpesa(talent_id: UUID, admin: Actor = Depends(require_admin)):
    with get_conn() as conn:
        return users_service.verify_mpesa_number(conn, actor=admin, talent_id=talent_id)
