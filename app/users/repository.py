# app/users/repository.py
from __future__ import annotations

import uuid
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from app.store.schema import talent_profiles, users, utcnow
from services.db_errors import raise_for_db_error


def get_user(conn, user_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
    return dict(row) if row else None


def get_user_by_email(conn, email: str) -> dict[str, Any] | None:
    row = conn.execute(
        select(users).where(users.c.email == (email or "").strip().lower())
    ).mappings().first()
    return dict(row) if row else None


def get_user_by_referral_code(conn, code: str) -> dict[str, Any] | None:
    row = conn.execute(select(users).where(users.c.referral_code == code)).mappings().first()
    return dict(row) if row else None


def referral_code_exists(conn, code: str) -> bool:
    return conn.execute(select(users.c.id).where(users.c.referral_code == code)).first() is not None


def insert_user(
    conn,
    *,
    email: str,
    name: Optional[str],
    role: str,
    password_hash: str,
    verification_status: str = "UNVERIFIED",
) -> UUID:
    user_id = uuid.uuid4()
    try:
        with conn.begin_nested():
            conn.execute(
                insert(users).values(
                    id=user_id,
                    email=email.strip().lower(),
                    name=name,
                    role=role,
                    password_hash=password_hash,
                    verification_status=verification_status,
                    is_active=True,
                    created_at=utcnow(),
                )
            )
    except IntegrityError as e:
        raise_for_db_error(e)
    if role == "TALENT":
        conn.execute(
            insert(talent_profiles).values(user_id=user_id, mpesa_verified=False, updated_at=utcnow())
        )
    return user_id


def set_verification_status(conn, user_id: UUID, status: str) -> None:
    conn.execute(update(users).where(users.c.id == user_id).values(verification_status=status))


def set_referral_code(conn, user_id: UUID, code: str) -> bool:
    res = conn.execute(
        update(users)
        .where(users.c.id == user_id, users.c.referral_code.is_(None))
        .values(referral_code=code)
    )
    return res.rowcount == 1


def get_talent_profile(conn, user_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(
        select(talent_profiles).where(talent_profiles.c.user_id == user_id)
    ).mappings().first()
    return dict(row) if row else None


def set_mpesa_number(conn, user_id: UUID, mpesa_phone_number: str) -> bool:
    # a changed number must be verified again
    res = conn.execute(
        update(talent_profiles)
        .where(talent_profiles.c.user_id == user_id)
        .values(mpesa_phone_number=mpesa_phone_number, mpesa_verified=False, updated_at=utcnow())
    )
    return res.rowcount == 1


def set_mpesa_verified(conn, user_id: UUID, verified: bool = True) -> bool:
    res = conn.execute(
        update(talent_profiles)
        .where(talent_profiles.c.user_id == user_id, talent_profiles.c.mpesa_phone_number.is_not(None))
        .values(mpesa_verified=verified, updated_at=utcnow())
    )
    return res.rowcount == 1
