"""
api/routes/v1/users.py -- Identity management endpoints.

Routes:
  GET    /api/v1/users        -- list all identities (Administrator only)
  GET    /api/v1/users/{id}   -- fetch one identity (any authenticated caller)
  PUT    /api/v1/users/{id}   -- update profile fields (any authenticated caller;
                                 changing role requires Administrator)
  DELETE /api/v1/users/{id}   -- remove an identity (any authenticated caller); 204

Role changes apply to tokens issued afterwards. A session already issued
keeps its role snapshot until it expires.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, Request, Response

from api.models import UserResponse, UserUpdate
from auth.dependencies import check_roles, get_current_session, require_admin
from auth.models import Role, SessionClaims
from auth.tokens import hash_password
from core.errors import ValidationError
from storage.base import Storage

logger = logging.getLogger("ksms.api")

router = APIRouter()


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, session: SessionClaims = Depends(require_admin)) -> list[UserResponse]:
    storage: Storage = request.app.state.storage
    return [UserResponse.from_user(u) for u in storage.list_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: str, session: SessionClaims = Depends(get_current_session)) -> UserResponse:
    storage: Storage = request.app.state.storage
    return UserResponse.from_user(storage.get_user(user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    session: SessionClaims = Depends(get_current_session),
) -> UserResponse:
    """Apply the supplied fields to the stored identity and write it back.

    404 if the user does not exist, 409 if the new email is taken, 403 if a
    non-administrator tries to change a role.
    """
    storage: Storage = request.app.state.storage
    current = storage.get_user(user_id)

    if body.role is not None and body.role != current.role:
        check_roles(session, {Role.administrator})
        if body.role is Role.anonymous:
            raise ValidationError("Role 'Anonymous' cannot be assigned to an account.")

    updated = replace(
        current,
        email=body.email if body.email is not None else current.email,
        first_name=body.first_name if body.first_name is not None else current.first_name,
        last_name=body.last_name if body.last_name is not None else current.last_name,
        role=body.role if body.role is not None else current.role,
        hashed_password=hash_password(body.password) if body.password is not None else current.hashed_password,
    )
    saved = storage.update_user(updated)
    if saved.role != current.role:
        logger.info("User %s role changed %s -> %s by %s", saved.id, current.role.value, saved.role.value, session.user_id)
    return UserResponse.from_user(saved)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: str, session: SessionClaims = Depends(get_current_session)) -> Response:
    """Delete an identity. Unknown ids are a no-op and still return 204."""
    storage: Storage = request.app.state.storage
    if storage.delete_user(user_id):
        logger.info("User %s deleted by %s", user_id, session.user_id)
    return Response(status_code=204)
