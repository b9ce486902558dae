"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - Password digests differ from plaintext and verify correctly
  - Passwords bcrypt cannot hash are rejected, not truncated
  - Token round trip carries user id and role
  - Expiry boundary: valid at exp, invalid one second later
  - Tampered tokens, tokens signed with another key, and garbage are rejected
  - authenticate_user: unknown email and wrong password both return None
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import Role, User
from auth.tokens import (
    TokenCodec,
    authenticate_user,
    expires_in_seconds,
    hash_password,
    verify_password,
)
from core.errors import InternalError, ValidationError
from storage.memory import MemoryStorage

SECRET = "k" * 40
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _saved_user(role: Role = Role.student) -> User:
    return User(email="u@example.com", hashed_password="x", role=role, id="user-1")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def test_hash_is_not_plaintext_and_verifies():
    digest = hash_password("s3cret")
    assert digest != "s3cret"
    assert verify_password("s3cret", digest)
    assert not verify_password("S3cret", digest)


def test_hash_is_salted():
    assert hash_password("same") != hash_password("same")


def test_oversize_password_raises_validation_error():
    with pytest.raises(ValidationError):
        hash_password("a" * 73)


def test_verify_against_malformed_digest_is_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


def test_issue_and_verify_round_trip():
    codec = TokenCodec(SECRET, expire_seconds=3600)
    issued = codec.issue(_saved_user(Role.administrator), now=T0)
    claims = codec.verify(issued.token, now=T0)
    assert claims is not None
    assert claims.user_id == "user-1"
    assert claims.role is Role.administrator
    assert claims.expires_at == T0 + timedelta(hours=1)
    assert issued.expires_at == claims.expires_at


def test_token_valid_at_expiry_instant():
    codec = TokenCodec(SECRET, expire_seconds=60)
    issued = codec.issue(_saved_user(), now=T0)
    assert codec.verify(issued.token, now=T0 + timedelta(seconds=60)) is not None


def test_token_invalid_one_second_after_expiry():
    codec = TokenCodec(SECRET, expire_seconds=60)
    issued = codec.issue(_saved_user(), now=T0)
    assert codec.verify(issued.token, now=T0 + timedelta(seconds=61)) is None


def test_token_from_other_key_rejected():
    issued = TokenCodec("o" * 40).issue(_saved_user(), now=T0)
    assert TokenCodec(SECRET).verify(issued.token, now=T0) is None


def test_tampered_token_rejected():
    codec = TokenCodec(SECRET)
    token = codec.issue(_saved_user(), now=T0).token
    header, payload, signature = token.split(".")
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
    assert codec.verify(f"{header}.{payload}.{flipped}", now=T0) is None


def test_garbage_token_rejected():
    assert TokenCodec(SECRET).verify("not.a.token") is None
    assert TokenCodec(SECRET).verify("") is None


def test_token_with_unknown_role_rejected():
    token = jwt.encode({"sub": "u", "role": "Root", "exp": int(T0.timestamp()) + 60}, SECRET, algorithm="HS256")
    assert TokenCodec(SECRET).verify(token, now=T0) is None


def test_token_with_anonymous_role_rejected():
    token = jwt.encode({"sub": "u", "role": "Anonymous", "exp": int(T0.timestamp()) + 60}, SECRET, algorithm="HS256")
    assert TokenCodec(SECRET).verify(token, now=T0) is None


def test_token_missing_subject_rejected():
    token = jwt.encode({"role": "Student", "exp": int(T0.timestamp()) + 60}, SECRET, algorithm="HS256")
    assert TokenCodec(SECRET).verify(token, now=T0) is None


def test_issue_for_unsaved_user_raises():
    with pytest.raises(InternalError):
        TokenCodec(SECRET).issue(User(email="a@b.c", hashed_password="x"))


def test_codec_requires_key():
    with pytest.raises(ValueError):
        TokenCodec("")


def test_expires_in_seconds_never_negative():
    assert expires_in_seconds(datetime.now(timezone.utc) - timedelta(minutes=5)) == 0


# ---------------------------------------------------------------------------
# authenticate_user
# ---------------------------------------------------------------------------


def test_authenticate_user():
    storage = MemoryStorage()
    storage.add_user(User(email="a@example.com", hashed_password=hash_password("right")))
    user = authenticate_user(storage, "a@example.com", "right")
    assert user is not None and user.email == "a@example.com"
    assert authenticate_user(storage, "a@example.com", "wrong") is None
    assert authenticate_user(storage, "nobody@example.com", "right") is None
