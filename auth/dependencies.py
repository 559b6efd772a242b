"""
auth/dependencies.py -- FastAPI Depends() helpers for the session guard.

Two ways to present a session, checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /api/login and /api/register.
  2. Authorization: Bearer <token> header -- API clients and scripts.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated. Member
routers attach it as a router-level dependency, so a denied request never
reaches storage.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.tokens import SESSION_COOKIE, decode_access_token
from registry.models import User


def try_get_current_user(request: Request) -> User | None:
    """Resolve the session on this request to a User.

    Returns the authenticated User on success, None on any failure.
    Never raises for a bad or missing token; storage failures still propagate.
    """
    token: str | None = request.cookies.get(SESSION_COOKIE)

    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None
    return request.app.state.storage.get_user(payload["user_id"])


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
