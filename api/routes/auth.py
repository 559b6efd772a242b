"""
api/routes/auth.py -- Login, logout, registration and current-user endpoints.

Routes:
  POST /login     -- password login; sets the session cookie
  POST /logout    -- clears the session cookie; 200
  POST /register  -- create an account and start a session
  GET  /user      -- current user (requires auth)

Security:
  POST /login and POST /register are rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on responses that set a session.
  The password hash never leaves the store: every response goes through
  UserResponse.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, RegisterRequest, UserResponse
from auth.dependencies import get_current_user
from auth.tokens import authenticate_user, clear_auth_cookie, create_access_token, hash_password, set_auth_cookie
from core.config import get_settings
from registry.models import User
from registry.storage import MemberStorage

logger = logging.getLogger("memberregistry.auth")

_settings = get_settings()

# Auth policy:
# - POST /api/login:     public -- login endpoint must be unauthenticated
# - POST /api/logout:    public -- clearing a cookie needs no prior auth
# - POST /api/register:  public, unless SELF_REGISTRATION_ENABLED=false
# - GET  /api/user:      requires auth (get_current_user)
router = APIRouter()


def _login_rate_limit() -> str:
    # Read per request so a changed LOGIN_RATE_LIMIT applies without re-import.
    return _settings.login_rate_limit


def _session_response(user: User, status_code: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=UserResponse.from_domain(user).model_dump(by_alias=True),
    )
    set_auth_cookie(resp, create_access_token(user.id, user.username))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/login", response_model=UserResponse)
@limiter.limit(_login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    Returns the same generic error for wrong username and wrong password
    ("bad_credentials") to avoid leaking username existence information.
    """
    storage: MemberStorage = request.app.state.storage
    user = authenticate_user(storage, body.username, body.password)
    if user is None:
        logger.info("Failed login attempt")
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Incorrect username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    logger.info("User %d logged in", user.id)
    return _session_response(user, status_code=200)


@router.post("/logout")
async def logout() -> JSONResponse:
    """Clear the session cookie."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp


@router.post("/register", response_model=UserResponse, status_code=201)
@limiter.limit(_login_rate_limit)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user account and log it in.

    A taken username raises ConflictError in the store, which the handler in
    api/main.py turns into 409.
    """
    if not _settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    storage: MemberStorage = request.app.state.storage
    user = storage.create_user(
        User(
            username=body.username,
            hashed_password=hash_password(body.password),
            display_name=body.display_name,
        )
    )
    logger.info("User %d registered", user.id)
    return _session_response(user, status_code=201)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/user", response_model=UserResponse)
async def get_user(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse.from_domain(current_user)
