"""
API request and response models for KSMS REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
storage/models.py, which own the internal domain representation. Route
handlers map between the two.

Secrets never appear in a response model: no password digest on users, no
kube-config on clusters.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import Role, User
from storage.models import Alert, Cluster, IncidentReport, Policy

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"

# Identity and label fields are trimmed. Secrets (passwords, kube-configs) are
# kept byte-exact: whatever is hashed or stored must match what is sent back.
Stripped = Annotated[str, StringConstraints(strip_whitespace=True)]

# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    email: Stripped = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=72)
    first_name: Stripped = Field(default="", max_length=255)
    last_name: Stripped = Field(default="", max_length=255)
    role: Optional[Role] = None


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: Stripped = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}.

    Omitted fields keep their current value. Changing role requires the
    Administrator role; password, when present, is re-hashed.
    """

    email: Optional[Stripped] = Field(default=None, min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    first_name: Optional[Stripped] = Field(default=None, max_length=255)
    last_name: Optional[Stripped] = Field(default=None, max_length=255)
    role: Optional[Role] = None


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_at: str
    expires_in: int
    user_id: str
    role: Role


class SessionResponse(BaseModel):
    """Response for GET /api/v1/auth/me -- the token's own claims."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role
    expires_at: str


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id or "",
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=Role(user.role),
            created_at=user.created_at or "",
        )


# ---------------------------------------------------------------------------
# Clusters
# ---------------------------------------------------------------------------


class ClusterCreate(BaseModel):
    """Request body for POST /api/v1/clusters."""

    name: Stripped = Field(min_length=1, max_length=255)
    kube_config: str = Field(min_length=1, max_length=1_000_000)


class MetricsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    cpu_usage: float
    memory_usage: float
    pod_count: int


class ClusterResponse(BaseModel):
    """A cluster registration without its kube-config."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    status: str
    metrics: MetricsResponse
    created_at: str
    status_detail: Optional[str] = None

    @classmethod
    def from_cluster(cls, cluster: Cluster, status_detail: Optional[str] = None) -> "ClusterResponse":
        return cls(
            id=cluster.id or "",
            name=cluster.name,
            status=cluster.status,
            metrics=MetricsResponse(
                cpu_usage=cluster.metrics.cpu_usage,
                memory_usage=cluster.metrics.memory_usage,
                pod_count=cluster.metrics.pod_count,
            ),
            created_at=cluster.created_at or "",
            status_detail=status_detail,
        )


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class PolicyCreate(BaseModel):
    """Request body for POST /api/v1/policies."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)
    rules: list[str] = Field(default_factory=list, max_length=500)
    namespace: str = Field(default="", max_length=255)


class PolicyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    rules: list[str]
    namespace: str
    created_at: str

    @classmethod
    def from_policy(cls, policy: Policy) -> "PolicyResponse":
        return cls(
            id=policy.id or "",
            name=policy.name,
            description=policy.description,
            rules=list(policy.rules),
            namespace=policy.namespace,
            created_at=policy.created_at or "",
        )


# ---------------------------------------------------------------------------
# Alerts and incident reports
# ---------------------------------------------------------------------------


class AlertResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    cluster_id: str
    severity: str
    message: str
    timestamp: str

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertResponse":
        return cls(
            id=alert.id or "",
            cluster_id=alert.cluster_id,
            severity=alert.severity,
            message=alert.message,
            timestamp=alert.timestamp or "",
        )


class ReportResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    alert_id: str
    details: str
    action_taken: str
    timestamp: str

    @classmethod
    def from_report(cls, report: IncidentReport) -> "ReportResponse":
        return cls(
            id=report.id or "",
            alert_id=report.alert_id,
            details=report.details,
            action_taken=report.action_taken,
            timestamp=report.timestamp or "",
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
