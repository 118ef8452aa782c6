# app/kyc/service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional
from uuid import UUID

from app.config import WorkflowConfig
from app.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from app.kyc import repository as repo
from app.kyc.model import REQUIRED_FILES, KycDocumentType, KycStatus
from app.kyc.state_machine import assert_submission_transition, assert_transition
from app.kyc.storage import UploadedDocument, remove_files, save_documents, validate_document
from app.store.schema import utcnow
from app.users import repository as users_repo
from app.users.model import Actor
from db import get_conn
from services.audit_log import write_audit_log
from services.notifications import admin_user_ids, notify, notify_many

logger = logging.getLogger("gigsec.kyc")


def _document_type(value: Optional[str]) -> KycDocumentType:
    try:
        return KycDocumentType((value or "").strip())
    except ValueError:
        raise ValidationError(
            'Invalid document type. Must be "national_id" or "business_registration"',
            code="INVALID_DOCUMENT_TYPE",
        )


def _collect(doc_type: KycDocumentType, files: Mapping[str, Optional[UploadedDocument]]) -> list[tuple[str, UploadedDocument]]:
    out: list[tuple[str, UploadedDocument]] = []
    for field, stored_type in REQUIRED_FILES[doc_type]:
        doc = files.get(field)
        if doc is None or not doc.data:
            raise ValidationError(
                f"Missing required document: {field}",
                code="MISSING_DOCUMENT",
                extra={"missing": field},
            )
        out.append((stored_type, doc))
    return out


def get_status(conn, user_id: UUID) -> dict[str, Any]:
    user = users_repo.get_user(conn, user_id)
    if not user:
        raise NotFound("User not found", code="USER_NOT_FOUND")

    latest = repo.latest_for_user(conn, user_id)
    if latest:
        latest["documents"] = [
            {k: d[k] for k in ("id", "document_type", "file_name", "file_size", "mime_type", "position")}
            for d in repo.list_documents(conn, latest["id"])
        ]
    return {"verification_status": user["verification_status"], "latest_submission": latest}


def submit(
    config: WorkflowConfig,
    *,
    actor: Actor,
    document_type: Optional[str],
    files: Mapping[str, Optional[UploadedDocument]],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    UNVERIFIED|REJECTED -> PENDING for the calling user.

    Every check runs before a byte hits the disk. Files written for a
    submission whose DB transaction fails are removed again.
    """
    doc_type = _document_type(document_type)
    docs = _collect(doc_type, files)
    for _, doc in docs:
        validate_document(doc, config.kyc)

    with get_conn() as conn:
        user = users_repo.get_user(conn, actor.user_id)
        if not user:
            raise NotFound("User not found", code="USER_NOT_FOUND")
        blocking = repo.has_blocking_submission(conn, actor.user_id)
        if blocking:
            raise InvalidTransition("kyc", blocking, KycStatus.PENDING.value)
        assert_transition(user["verification_status"], KycStatus.PENDING.value)

    now = now or utcnow()
    paths = save_documents(config.kyc, actor.user_id, [doc for _, doc in docs])
    try:
        with get_conn() as conn:
            # re-check inside the writing transaction
            if repo.has_blocking_submission(conn, actor.user_id):
                raise InvalidTransition("kyc", "PENDING", KycStatus.PENDING.value,
                                        message="A submission is already under review")

            submission_id = repo.insert_submission(
                conn, user_id=actor.user_id, document_type=doc_type.value, submitted_at=now
            )
            for position, ((stored_type, doc), path) in enumerate(zip(docs, paths)):
                repo.insert_document(
                    conn,
                    submission_id=submission_id,
                    position=position,
                    document_type=stored_type,
                    file_name=doc.filename,
                    file_path=path,
                    mime_type=doc.content_type.lower(),
                    file_size=doc.size,
                )
            users_repo.set_verification_status(conn, actor.user_id, "PENDING")
            notify_many(
                conn,
                admin_user_ids(conn),
                type="KYC_SUBMITTED",
                title="New KYC submission",
                message=f"{user.get('name') or user['email']} submitted {doc_type.value} documents for review.",
            )
            write_audit_log(
                conn,
                actor_user_id=actor.user_id,
                action="KYC_SUBMIT",
                target_id=str(submission_id),
                metadata={"document_type": doc_type.value, "files": len(paths)},
            )
    except Exception:
        remove_files(paths)
        raise

    logger.info("kyc submitted user=%s submission=%s type=%s", actor.user_id, submission_id, doc_type.value)
    with get_conn() as conn:
        return get_status(conn, actor.user_id)


def review(
    conn,
    *,
    submission_id: UUID,
    actor: Actor,
    decision: str,
    rejection_reason: Optional[str] = None,
    admin_notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    if not actor.is_admin:
        raise Forbidden("Admin privileges required", code="ADMIN_ONLY")

    try:
        new_status = KycStatus((decision or "").strip().upper())
    except ValueError:
        raise ValidationError("decision must be VERIFIED or REJECTED", code="INVALID_DECISION")
    if new_status == KycStatus.PENDING:
        raise ValidationError("decision must be VERIFIED or REJECTED", code="INVALID_DECISION")

    reason = (rejection_reason or "").strip() or None
    if new_status == KycStatus.REJECTED and not reason:
        raise ValidationError("Rejection reason is required", code="REJECTION_REASON_REQUIRED")

    submission = repo.get_submission(conn, submission_id)
    if not submission:
        raise NotFound("KYC submission not found", code="KYC_NOT_FOUND")
    assert_submission_transition(submission["status"], new_status.value)
    user = users_repo.get_user(conn, submission["user_id"])
    assert_transition(user["verification_status"], new_status.value)

    now = now or utcnow()
    if not repo.review(
        conn,
        submission_id=submission_id,
        new_status=new_status.value,
        reviewed_by_id=actor.user_id,
        reviewed_at=now,
        rejection_reason=reason if new_status == KycStatus.REJECTED else None,
        admin_notes=admin_notes,
    ):
        raise InvalidTransition("kyc", submission["status"], new_status.value,
                                message="Submission was reviewed by another request")

    users_repo.set_verification_status(conn, submission["user_id"], new_status.value)

    if new_status == KycStatus.VERIFIED:
        notify(conn, user_id=submission["user_id"], type="KYC_VERIFIED", title="Verification approved",
               message="Your identity documents were approved.")
    else:
        notify(conn, user_id=submission["user_id"], type="KYC_REJECTED", title="Verification rejected",
               message=f"Your identity documents were rejected: {reason}")

    write_audit_log(
        conn,
        actor_user_id=actor.user_id,
        action=f"KYC_{new_status.value}",
        target_id=str(submission_id),
        metadata={"user_id": str(submission["user_id"])},
    )
    logger.info("kyc reviewed submission=%s status=%s", submission_id, new_status.value)
    return repo.get_submission(conn, submission_id)


def list_submissions(conn, *, status: Optional[str] = None) -> list[dict[str, Any]]:
    if status:
        status = KycStatus(status.upper()).value
    return repo.list_submissions(conn, status=status)
