# deps/auth.py
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from uuid import UUID

from app.users import repository as users_repo
from app.users.model import Actor, Role
from db import get_conn
from security import decode_token

bearer = HTTPBearer(auto_error=False)


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Actor:
    if not creds:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    # must be "Bearer"
    if (creds.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    payload = decode_token(creds.credentials)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    try:
        user_id = UUID(sub)
    except ValueError:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    # role comes from the DB, not the token, so demotions apply immediately
    with get_conn() as conn:
        user = users_repo.get_user(conn, user_id)
    if not user or not user["is_active"]:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    return Actor(user_id=user_id, role=Role(user["role"]))


def require_role(*roles: Role):
    def _dep(user: Actor = Depends(get_current_user)) -> Actor:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="ROLE_NOT_ALLOWED")
        return user

    return _dep
