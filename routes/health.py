from __future__ import annotations

import os

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from db import get_conn
from settings import settings

router = APIRouter(tags=["health"])


def _check_db() -> tuple[bool, str | None]:
    try:
        with get_conn() as conn:
            conn.execute(text("SELECT 1"))
        return True, None
    except SQLAlchemyError as exc:
        return False, type(exc).__name__


@router.get("/healthz")
def healthz():
    db_ok, db_error = _check_db()
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "payout_provider": settings.PAYOUT_PROVIDER_MODE,
        "db_ok": db_ok,
        "db_error": db_error,
    }
