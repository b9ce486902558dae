"""
auth/tokens.py -- Password hashing, session token codec, and cookie helpers.

Security design decisions:
  Tokens: python-jose with HS256. A TokenCodec is built once at startup from
       Settings and kept on app.state -- the signing key is never a module
       global, so tests can run with throwaway keys and each environment
       supplies its own. verify() returns None on any failure; the session
       middleware turns that into an anonymous request.

  Expiry: checked by the codec itself against an injectable clock rather than
       by python-jose, so the boundary is exact (a token presented at its
       expiry instant is still valid; one second later it is not).

  Passwords: bcrypt directly (no passlib wrapper). Hashing failures raise --
       a password must never be stored unhashed or silently replaced. The
       _DUMMY_HASH constant equalizes login timing so response time does not
       reveal whether an email is registered.

Layer rule: no runtime imports from api/, storage/, or clusters/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Role, SessionClaims
from core.errors import InternalError, NotFound, ValidationError

if TYPE_CHECKING:
    from auth.models import User
    from storage.base import Storage

logger = logging.getLogger("ksms.auth")

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input.
_BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt digest of the given plaintext password.

    Raises ValidationError for passwords bcrypt cannot hash (over 72 bytes)
    and InternalError for any other hashing failure.
    """
    raw = plain.encode("utf-8")
    if len(raw) > _BCRYPT_MAX_BYTES:
        raise ValidationError("Password is too long.", detail=f"Maximum is {_BCRYPT_MAX_BYTES} bytes.")
    try:
        return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")
    except (ValueError, TypeError) as exc:
        logger.error("Password hashing failed: %s", exc)
        raise InternalError("Could not hash password.") from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt digest.

    bcrypt.checkpw compares in constant time. A malformed digest or an
    oversize password is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


_DUMMY_HASH: str = hash_password("ksms_timing_dummy")


def authenticate_user(storage: Storage, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    bcrypt runs whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real digest

    Returns the User on success, None on any mismatch.
    """
    try:
        user = storage.get_user_by_email(email)
    except NotFound:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


class TokenCodec:
    """Issues and verifies signed, time-bound session tokens.

    Claims: sub (user id), role (Role value at issuance), iat, exp.

    Usage:
        codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)
        issued = codec.issue(user)
        claims = codec.verify(issued.token)   # SessionClaims or None
    """

    def __init__(self, secret_key: str, expire_seconds: int = 24 * 60 * 60, algorithm: str = _ALGORITHM) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty secret key.")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive.")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.expire_seconds = expire_seconds

    def issue(self, user: User, now: datetime | None = None) -> IssuedToken:
        """Sign a token for user, valid for expire_seconds from now."""
        if user.id is None:
            raise InternalError("Cannot issue a session for an unsaved user.")
        current = now or datetime.now(timezone.utc)
        issued_at = int(current.timestamp())
        expires = issued_at + self.expire_seconds
        payload = {
            "sub": user.id,
            "role": Role(user.role).value,
            "iat": issued_at,
            "exp": expires,
        }
        try:
            token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        except JWTError as exc:
            raise InternalError("Could not sign session token.") from exc
        return IssuedToken(token=token, expires_at=datetime.fromtimestamp(expires, tz=timezone.utc))

    def verify(self, token: str, now: datetime | None = None) -> SessionClaims | None:
        """Return the token's claims, or None if it is forged, malformed, or expired.

        Never raises for a bad token: an invalid credential is the same as no
        credential, and the Role Gate decides whether that matters.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        try:
            user_id = payload["sub"]
            role = Role(payload["role"])
            expires = int(payload["exp"])
        except (KeyError, TypeError, ValueError):
            return None
        if not isinstance(user_id, str) or not user_id or role is Role.anonymous:
            return None

        expires_at = datetime.fromtimestamp(expires, tz=timezone.utc)
        current = now or datetime.now(timezone.utc)
        if current > expires_at:
            return None
        return SessionClaims(user_id=user_id, role=role, expires_at=expires_at)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expires_at: datetime, *, name: str = "token", secure: bool = False) -> None:
    """Write the session token as a site-wide httpOnly cookie.

    The cookie expires together with the token so the browser drops it at
    the same instant the server would start rejecting it.
    """
    max_age = max(0, int((expires_at - datetime.now(timezone.utc)).total_seconds()))
    response.set_cookie(
        name,
        value=token,
        max_age=max_age,
        expires=expires_at,
        path="/",
        httponly=True,
        samesite="lax",
        secure=secure,
    )


def clear_auth_cookie(response, *, name: str = "token", secure: bool = False) -> None:
    """Overwrite the session cookie with an already-expired, empty one."""
    response.delete_cookie(name, path="/", httponly=True, samesite="lax", secure=secure)


def expires_in_seconds(expires_at: datetime) -> int:
    return max(0, int((expires_at - datetime.now(timezone.utc)) / timedelta(seconds=1)))
