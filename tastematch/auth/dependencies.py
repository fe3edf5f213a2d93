from __future__ import annotations

from fastapi import HTTPException, Request

ADMIN_ROLE = "admin"


def get_current_user(request: Request) -> dict | None:
    """Session user ``{username, user_id, role}``, or ``None`` when anonymous."""
    return request.session.get("user")


def get_current_user_id(request: Request) -> str | None:
    """User id for routes that fall back to default results for anonymous callers."""
    user = get_current_user(request)
    return user.get("user_id") if user else None


def require_user(request: Request) -> dict:
    user = get_current_user(request)
    if not user or not user.get("user_id"):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_admin(request: Request) -> dict:
    user = require_user(request)
    if user.get("role") != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
