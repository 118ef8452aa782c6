# app/kyc/repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, select, update

from app.store.schema import kyc_documents, kyc_submissions, users, utcnow


def get_submission(conn, submission_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(select(kyc_submissions).where(kyc_submissions.c.id == submission_id)).mappings().first()
    return dict(row) if row else None


def latest_for_user(conn, user_id: UUID) -> dict[str, Any] | None:
    row = conn.execute(
        select(kyc_submissions)
        .where(kyc_submissions.c.user_id == user_id)
        .order_by(kyc_submissions.c.submitted_at.desc())
    ).mappings().first()
    return dict(row) if row else None


def has_blocking_submission(conn, user_id: UUID) -> Optional[str]:
    row = conn.execute(
        select(kyc_submissions.c.status).where(
            kyc_submissions.c.user_id == user_id,
            kyc_submissions.c.status.in_(("PENDING", "VERIFIED")),
        )
    ).first()
    return row[0] if row else None


def insert_submission(conn, *, user_id: UUID, document_type: str, submitted_at: datetime) -> UUID:
    submission_id = uuid.uuid4()
    conn.execute(
        insert(kyc_submissions).values(
            id=submission_id,
            user_id=user_id,
            document_type=document_type,
            status="PENDING",
            submitted_at=submitted_at,
        )
    )
    return submission_id


def insert_document(
    conn,
    *,
    submission_id: UUID,
    position: int,
    document_type: str,
    file_name: str,
    file_path: str,
    mime_type: str,
    file_size: int,
) -> None:
    conn.execute(
        insert(kyc_documents).values(
            id=uuid.uuid4(),
            submission_id=submission_id,
            position=position,
            document_type=document_type,
            file_name=file_name,
            file_path=file_path,
            mime_type=mime_type,
            file_size=file_size,
            created_at=utcnow(),
        )
    )


def list_documents(conn, submission_id: UUID) -> list[dict[str, Any]]:
    rows = conn.execute(
        select(kyc_documents)
        .where(kyc_documents.c.submission_id == submission_id)
        .order_by(kyc_documents.c.position)
    ).mappings().all()
    return [dict(r) for r in rows]


def review(
    conn,
    *,
    submission_id: UUID,
    new_status: str,
    reviewed_by_id: UUID,
    reviewed_at: datetime,
    rejection_reason: Optional[str],
    admin_notes: Optional[str],
) -> bool:
    res = conn.execute(
        update(kyc_submissions)
        .where(kyc_submissions.c.id == submission_id, kyc_submissions.c.status == "PENDING")
        .values(
            status=new_status,
            reviewed_by_id=reviewed_by_id,
            reviewed_at=reviewed_at,
            rejection_reason=rejection_reason,
            admin_notes=admin_notes,
        )
    )
    return res.rowcount == 1


def list_submissions(conn, *, status: Optional[str] = None, limit: int = 100) -> list[dict[str, Any]]:
    stmt = select(
        kyc_submissions,
        users.c.name.label("user_name"),
        users.c.email.label("user_email"),
        users.c.role.label("user_role"),
    ).join(users, users.c.id == kyc_submissions.c.user_id)
    if status:
        stmt = stmt.where(kyc_submissions.c.status == status)
    rows = conn.execute(stmt.order_by(kyc_submissions.c.submitted_at.desc()).limit(limit)).mappings().all()
    return [dict(r) for r in rows]
