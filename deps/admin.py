# deps/admin.py
from fastapi import Depends, HTTPException, status

from app.users.model import Actor
from deps.auth import get_current_user


def require_admin(user: Actor = Depends(get_current_user)) -> Actor:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
    return user
