"""
api/routes/v1/policies.py -- Security policy endpoints.

Routes:
  GET    /api/v1/policies        -- list policies (any authenticated caller)
  GET    /api/v1/policies/{id}   -- fetch one policy (any authenticated caller)
  POST   /api/v1/policies        -- create a policy (Administrator, Security Analyst)
  DELETE /api/v1/policies/{id}   -- delete a policy (Administrator, Security Analyst); 204
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import PolicyCreate, PolicyResponse
from auth.dependencies import get_current_session, require_operator
from auth.models import SessionClaims
from storage.base import Storage
from storage.models import Policy

router = APIRouter()


@router.get("/policies", response_model=list[PolicyResponse])
def list_policies(request: Request, session: SessionClaims = Depends(get_current_session)) -> list[PolicyResponse]:
    storage: Storage = request.app.state.storage
    return [PolicyResponse.from_policy(p) for p in storage.list_policies()]


@router.get("/policies/{policy_id}", response_model=PolicyResponse)
def get_policy(request: Request, policy_id: str, session: SessionClaims = Depends(get_current_session)) -> PolicyResponse:
    storage: Storage = request.app.state.storage
    return PolicyResponse.from_policy(storage.get_policy(policy_id))


@router.post("/policies", response_model=PolicyResponse, status_code=201)
def create_policy(
    request: Request,
    body: PolicyCreate,
    session: SessionClaims = Depends(require_operator),
) -> PolicyResponse:
    storage: Storage = request.app.state.storage
    policy = storage.add_policy(
        Policy(name=body.name, description=body.description, rules=list(body.rules), namespace=body.namespace)
    )
    return PolicyResponse.from_policy(policy)


@router.delete("/policies/{policy_id}", status_code=204)
def delete_policy(request: Request, policy_id: str, session: SessionClaims = Depends(require_operator)) -> Response:
    storage: Storage = request.app.state.storage
    storage.delete_policy(policy_id)
    return Response(status_code=204)
