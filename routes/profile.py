# routes/profile.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.users import service as users_service
from app.users.model import Actor, Role
from db import get_conn
from deps.auth import require_role
from schemas import MpesaUpdateRequest

router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.put("/mpesa")
def set_mpesa(body: MpesaUpdateRequest, user: Actor = Depends(require_role(Role.TALENT))):
    with get_conn() as conn:
        profile = users_service.set_mpesa_number(conn, actor=user, mpesa_phone_number=body.mpesa_phone_number)
    return {
        "mpesa_phone_number": profile["mpesa_phone_number"],
        "mpesa_verified": profile["mpesa_verified"],
    }
