"""
storage/models.py -- Domain dataclasses for cluster, policy, alert, and report records.

These are pure data containers with zero logic. The identity record (User)
lives in auth/models.py next to Role; everything else the Credential Store
owns is defined here.

id and created_at/timestamp are None before a record is written to a store;
the store assigns them on insert.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

CLUSTER_CONNECTED = "Connected"
CLUSTER_ERROR = "Error"


@dataclass
class Metrics:
    """Last-known metrics snapshot for a cluster."""

    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    pod_count: int = 0


@dataclass
class Cluster:
    """A registered Kubernetes cluster.

    kube_config is the raw kube-config document supplied at registration.
    It is a write-only secret: the API layer never echoes it back.
    status moves between CLUSTER_CONNECTED and CLUSTER_ERROR as probes
    succeed or fail.
    """

    name: str
    kube_config: str
    status: str = CLUSTER_ERROR
    metrics: Metrics = field(default_factory=Metrics)
    id: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class Policy:
    """A named set of security rules scoped to a namespace."""

    name: str
    description: str = ""
    rules: list[str] = field(default_factory=list)
    namespace: str = ""
    id: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class Alert:
    """A security alert raised against a cluster. Append-only."""

    cluster_id: str
    severity: str
    message: str
    id: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class IncidentReport:
    """Follow-up record describing the action taken on an alert. Append-only."""

    alert_id: str
    details: str
    action_taken: str = ""
    id: Optional[str] = None
    timestamp: Optional[str] = None
