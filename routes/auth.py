# routes/auth.py
from fastapi import APIRouter, HTTPException

from app.users import service as users_service
from db import get_conn
from security import create_access_token
from schemas import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest):
    with get_conn() as conn:
        user = users_service.authenticate(conn, email=body.email, password=body.password)

    if not user:
        raise HTTPException(status_code=401, detail="INVALID_CREDENTIALS")

    token = create_access_token(sub=str(user["id"]), role=user["role"])
    return LoginResponse(access_token=token, user_id=user["id"], role=user["role"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(payload: RegisterRequest):
    with get_conn() as conn:
        user = users_service.register(
            conn,
            email=payload.email,
            password=payload.password,
            name=payload.name,
            role=payload.role,
            referral_code=payload.referral_code,
        )

    return RegisterResponse(
        user_id=user["id"],
        role=user["role"],
        referral_applied=bool(payload.referral_code and payload.referral_code.strip()),
    )
