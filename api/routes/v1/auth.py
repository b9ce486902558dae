"""
api/routes/v1/auth.py -- Registration, login, logout, and session introspection.

Routes:
  POST /api/v1/auth/register  -- create an identity (default role Student); 201
  POST /api/v1/auth/login     -- verify email/password; token in body and cookie
  POST /api/v1/auth/logout    -- overwrite the session cookie with an expired one
  GET  /api/v1/auth/me        -- claims of the presented session (requires auth)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  authenticate_user() equalizes timing between unknown email and wrong password.
  Wrong email and wrong password return the same 401 body.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import LoginRequest, LoginResponse, RegisterRequest, SessionResponse, UserResponse
from auth.dependencies import get_current_session
from auth.models import DEFAULT_ROLE, Role, SessionClaims, User
from auth.tokens import (
    TokenCodec,
    authenticate_user,
    clear_auth_cookie,
    expires_in_seconds,
    hash_password,
    set_auth_cookie,
)
from core.errors import ValidationError
from storage.base import Storage

logger = logging.getLogger("ksms.api")

router = APIRouter()


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a new identity. Duplicate email -> 409."""
    storage: Storage = request.app.state.storage
    role = body.role or DEFAULT_ROLE
    if role is Role.anonymous:
        raise ValidationError("Role 'Anonymous' cannot be assigned to an account.")

    user = storage.add_user(
        User(
            email=body.email,
            hashed_password=hash_password(body.password),
            first_name=body.first_name,
            last_name=body.last_name,
            role=role,
        )
    )
    logger.info("Registered user %s with role %s", user.id, user.role.value)
    return UserResponse.from_user(user)


@limiter.limit(LOGIN_RATE_LIMIT)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return the token and set the session cookie."""
    storage: Storage = request.app.state.storage
    codec: TokenCodec = request.app.state.token_codec
    settings = request.app.state.settings

    user = authenticate_user(storage, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid credentials."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    issued = codec.issue(user)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=issued.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_at=issued.expires_at.isoformat(),
            expires_in=expires_in_seconds(issued.expires_at),
            user_id=user.id or "",
            role=user.role,
        ).model_dump(mode="json"),
    )
    set_auth_cookie(resp, issued.token, issued.expires_at, name=settings.auth_cookie_name, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Expire the session cookie. The token itself stays valid until its exp."""
    settings = request.app.state.settings
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp, name=settings.auth_cookie_name, secure=settings.secure_cookies)
    return resp


@router.get("/auth/me", response_model=SessionResponse)
def me(session: SessionClaims = Depends(get_current_session)) -> SessionResponse:
    return SessionResponse(user_id=session.user_id, role=session.role, expires_at=session.expires_at.isoformat())
