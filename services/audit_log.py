from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import insert

from app.store.schema import audit_log, utcnow
from services.observability import get_request_id


def write_audit_log(
    conn,
    *,
    actor_user_id,
    action: str,
    target_id: str | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    conn.execute(
        insert(audit_log).values(
            id=uuid.uuid4(),
            actor_user_id=uuid.UUID(str(actor_user_id)),
            action=action,
            target_id=(str(target_id) if target_id is not None else None),
            metadata=metadata or {},
            request_id=get_request_id(),
            created_at=utcnow(),
        )
    )
