# routes/kyc.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from starlette.concurrency import run_in_threadpool

from app.config import WorkflowConfig
from app.kyc import service as kyc_service
from app.kyc.storage import UploadedDocument
from app.users.model import Actor
from db import get_conn
from deps.auth import get_current_user
from deps.workflow import get_workflow_config

router = APIRouter(prefix="/api/me", tags=["kyc"])


async def _read(field: str, upload: Optional[UploadFile], limit: int) -> Optional[UploadedDocument]:
    if upload is None:
        return None
    # read one byte past the limit so oversize files are still rejected by size
    data = await upload.read(limit + 1)
    return UploadedDocument(
        field=field,
        filename=upload.filename or "",
        content_type=upload.content_type or "",
        data=data,
    )


@router.get("/kyc-submit")
def kyc_status(user: Actor = Depends(get_current_user)):
    with get_conn() as conn:
        return kyc_service.get_status(conn, user.user_id)


@router.post("/kyc-submit", status_code=201)
async def kyc_submit(
    documentType: str = Form(...),
    idFront: Optional[UploadFile] = File(default=None),
    idBack: Optional[UploadFile] = File(default=None),
    businessCert: Optional[UploadFile] = File(default=None),
    user: Actor = Depends(get_current_user),
    config: WorkflowConfig = Depends(get_workflow_config),
):
    limit = config.kyc.max_file_bytes
    files = {
        "idFront": await _read("idFront", idFront, limit),
        "idBack": await _read("idBack", idBack, limit),
        "businessCert": await _read("businessCert", businessCert, limit),
    }
    return await run_in_threadpool(
        kyc_service.submit, config, actor=user, document_type=documentType, files=files
    )
