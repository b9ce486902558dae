"""
storage/base.py -- The Credential Store contract.

Two interchangeable backends implement Storage:
  storage.memory.MemoryStorage     -- in-process dicts, per-table RWLock
  storage.database.DatabaseStorage -- SQLAlchemy Core, one table per entity

Both must give the same outcome for the same input: same records back, same
errors raised. tests/test_storage_contract.py runs one suite against both.

Error contract:
  add_*     -> Conflict if the id (or a user's email) is already taken
  get_*     -> NotFound if absent
  update_*  -> NotFound if absent; full replace of every field except created_at
  delete_*  -> never fails; returns True if a record was removed

Records passed in are not retained and records returned are copies, so a
caller mutating a returned object never changes stored state.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from auth.models import User
from storage.models import Alert, Cluster, IncidentReport, Policy


def new_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Storage(ABC):
    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    @abstractmethod
    def add_user(self, user: User) -> User: ...

    @abstractmethod
    def get_user(self, user_id: str) -> User: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> User: ...

    @abstractmethod
    def list_users(self) -> list[User]: ...

    @abstractmethod
    def update_user(self, user: User) -> User: ...

    @abstractmethod
    def delete_user(self, user_id: str) -> bool: ...

    # ------------------------------------------------------------------
    # Clusters
    # ------------------------------------------------------------------

    @abstractmethod
    def add_cluster(self, cluster: Cluster) -> Cluster: ...

    @abstractmethod
    def get_cluster(self, cluster_id: str) -> Cluster: ...

    @abstractmethod
    def list_clusters(self) -> list[Cluster]: ...

    @abstractmethod
    def update_cluster(self, cluster: Cluster) -> Cluster: ...

    @abstractmethod
    def delete_cluster(self, cluster_id: str) -> bool: ...

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    @abstractmethod
    def add_policy(self, policy: Policy) -> Policy: ...

    @abstractmethod
    def get_policy(self, policy_id: str) -> Policy: ...

    @abstractmethod
    def list_policies(self) -> list[Policy]: ...

    @abstractmethod
    def delete_policy(self, policy_id: str) -> bool: ...

    # ------------------------------------------------------------------
    # Alerts and incident reports (append-only, newest first)
    # ------------------------------------------------------------------

    @abstractmethod
    def add_alert(self, alert: Alert) -> Alert: ...

    @abstractmethod
    def list_alerts(self) -> list[Alert]: ...

    @abstractmethod
    def add_report(self, report: IncidentReport) -> IncidentReport: ...

    @abstractmethod
    def list_reports(self) -> list[IncidentReport]: ...

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the backend can serve queries right now."""

    def close(self) -> None:
        """Release backend resources. The in-process store has none."""
