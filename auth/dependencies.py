"""
auth/dependencies.py -- Session middleware and Role Gate.

Authentication and authorization are split in two phases:

  1. session_middleware runs on every request. It extracts a token (cookie
     first, then Authorization: Bearer), verifies it, and stores the result on
     request.state.session -- SessionClaims or None. It never rejects: public
     routes live behind the same middleware, and a stale or tampered cookie
     must not break them.

  2. The Role Gate (check_roles / require_roles / get_current_session) runs
     per route as a FastAPI dependency and turns "no session" into 401 and
     "wrong role" into 403.

The gate trusts the role snapshot inside the token and does not re-read the
store. A downgraded administrator keeps the old privileges until the token
expires.

Layer rule: no imports from storage/ or clusters/. This module may import from
fastapi/starlette because it is part of the request pipeline.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from fastapi import Request

from auth.models import Role, SessionClaims
from auth.tokens import TokenCodec
from core.errors import Forbidden, Unauthorized

logger = logging.getLogger("ksms.auth")


def extract_token(request: Request, cookie_name: str = "token") -> str | None:
    """Return the raw session token from the request, or None.

    Priority:
      1. Session cookie -- set by POST /auth/login.
      2. Authorization: Bearer header -- API clients.
    The first non-empty value wins.
    """
    token = request.cookies.get(cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return None


def authenticate_request(request: Request, codec: TokenCodec, cookie_name: str = "token") -> SessionClaims | None:
    """Verify the request's credential. Returns None when absent or invalid."""
    token = extract_token(request, cookie_name)
    if token is None:
        return None
    claims = codec.verify(token)
    if claims is None:
        logger.debug("Ignoring invalid session token on %s %s", request.method, request.url.path)
    return claims


async def session_middleware(request: Request, call_next):
    """Attach request.state.session for every request, then continue the chain.

    Reads the codec and cookie name from app.state (set in lifespan).
    """
    codec: TokenCodec | None = getattr(request.app.state, "token_codec", None)
    cookie_name: str = getattr(request.app.state, "auth_cookie_name", "token")
    request.state.session = authenticate_request(request, codec, cookie_name) if codec is not None else None
    return await call_next(request)


# ---------------------------------------------------------------------------
# Role Gate
# ---------------------------------------------------------------------------


def check_roles(session: SessionClaims | None, allowed: Iterable[Role]) -> SessionClaims:
    """Return session if its role is in allowed.

    Raises Unauthorized when there is no session, Forbidden when the role is
    not on the allow-list. An empty allow-list admits nobody.
    """
    if session is None:
        raise Unauthorized("Authentication required.")
    if session.role not in set(allowed):
        raise Forbidden("Insufficient role for this operation.")
    return session


def get_current_session(request: Request) -> SessionClaims:
    """Require any authenticated caller.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: SessionClaims = Depends(get_current_session)): ...
    """
    session = getattr(request.state, "session", None)
    if session is None:
        raise Unauthorized("Authentication required.")
    return session


def require_roles(*roles: Role) -> Callable[[Request], SessionClaims]:
    """Build a dependency that admits only the given roles.

    Use as a FastAPI dependency:
        @router.get("/users")
        def route(session: SessionClaims = Depends(require_roles(Role.administrator))): ...
    """
    allowed = frozenset(roles)

    def dependency(request: Request) -> SessionClaims:
        return check_roles(getattr(request.state, "session", None), allowed)

    return dependency


require_admin = require_roles(Role.administrator)
require_operator = require_roles(Role.administrator, Role.security_analyst)
