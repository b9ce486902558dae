"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these types only own the shape of an identity and a session.

Layer rule: no imports from api/, storage/, or clusters/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Privilege tier. Every stored identity has exactly one non-anonymous role.

    Values are the strings carried in session tokens and stored in the
    users table, so renaming a value invalidates existing sessions.
    """

    anonymous = "Anonymous"
    student = "Student"
    instructor = "Instructor"
    administrator = "Administrator"
    security_analyst = "Security Analyst"


DEFAULT_ROLE = Role.student


@dataclass
class User:
    """A registered identity.

    hashed_password is a bcrypt digest; the plaintext never reaches a store.
    id and created_at are None until the store assigns them on insert.

    token_keys holds revocation-capable token identifiers. Session tokens are
    not checked against it (there is no server-side revocation); the list is
    persisted so a revocation check can be added without a schema change.
    """

    email: str
    hashed_password: str
    role: Role = DEFAULT_ROLE
    first_name: str = ""
    last_name: str = ""
    id: str | None = None
    token_keys: list[str] = field(default_factory=list)
    created_at: str | None = None


@dataclass(frozen=True)
class SessionClaims:
    """The verified contents of a session token.

    role is the snapshot taken at issuance. A role change in the store does
    not reach an already-issued token until it expires.
    """

    user_id: str
    role: Role
    expires_at: datetime
