"""
storage/memory.py -- In-process Credential Store.

Each logical table is a dict (or list, for the append-only tables) guarded by
its own RWLock: concurrent reads proceed together, writes are exclusive, and
a write to one table never blocks reads of another.

Data lives only as long as the process. open_storage() falls back to this
backend when the database is unreachable.
"""

from __future__ import annotations

import copy
from dataclasses import replace

from auth.models import Role, User
from core.errors import Conflict, NotFound
from core.rwlock import RWLock
from storage.base import Storage, new_id, now_iso
from storage.models import Alert, Cluster, IncidentReport, Policy


class MemoryStorage(Storage):
    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._clusters: dict[str, Cluster] = {}
        self._policies: dict[str, Policy] = {}
        self._alerts: list[Alert] = []
        self._reports: list[IncidentReport] = []
        self._users_lock = RWLock()
        self._clusters_lock = RWLock()
        self._policies_lock = RWLock()
        self._alerts_lock = RWLock()
        self._reports_lock = RWLock()

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> User:
        record = copy.deepcopy(user)
        record.id = record.id or new_id()
        record.created_at = record.created_at or now_iso()
        record.role = Role(record.role)
        with self._users_lock.write():
            if record.id in self._users:
                raise Conflict("A user with that id already exists.")
            if self._email_taken(record.email):
                raise Conflict("A user with that email already exists.")
            self._users[record.id] = record
        return copy.deepcopy(record)

    def get_user(self, user_id: str) -> User:
        with self._users_lock.read():
            user = self._users.get(user_id)
            if user is None:
                raise NotFound("User not found.")
            return copy.deepcopy(user)

    def get_user_by_email(self, email: str) -> User:
        with self._users_lock.read():
            for user in self._users.values():
                if user.email == email:
                    return copy.deepcopy(user)
        raise NotFound("User not found.")

    def list_users(self) -> list[User]:
        with self._users_lock.read():
            users = [copy.deepcopy(u) for u in self._users.values()]
        return sorted(users, key=lambda u: u.email)

    def update_user(self, user: User) -> User:
        with self._users_lock.write():
            existing = self._users.get(user.id) if user.id else None
            if existing is None:
                raise NotFound("User not found.")
            if self._email_taken(user.email, exclude_id=user.id):
                raise Conflict("A user with that email already exists.")
            record = replace(copy.deepcopy(user), created_at=existing.created_at, role=Role(user.role))
            self._users[user.id] = record
        return copy.deepcopy(record)

    def delete_user(self, user_id: str) -> bool:
        with self._users_lock.write():
            return self._users.pop(user_id, None) is not None

    def _email_taken(self, email: str, exclude_id: str | None = None) -> bool:
        # Caller holds the users lock.
        return any(u.email == email and u.id != exclude_id for u in self._users.values())

    # ------------------------------------------------------------------
    # Clusters
    # ------------------------------------------------------------------

    def add_cluster(self, cluster: Cluster) -> Cluster:
        record = copy.deepcopy(cluster)
        record.id = record.id or new_id()
        record.created_at = record.created_at or now_iso()
        with self._clusters_lock.write():
            if record.id in self._clusters:
                raise Conflict("A cluster with that id already exists.")
            self._clusters[record.id] = record
        return copy.deepcopy(record)

    def get_cluster(self, cluster_id: str) -> Cluster:
        with self._clusters_lock.read():
            cluster = self._clusters.get(cluster_id)
            if cluster is None:
                raise NotFound("Cluster not found.")
            return copy.deepcopy(cluster)

    def list_clusters(self) -> list[Cluster]:
        with self._clusters_lock.read():
            clusters = [copy.deepcopy(c) for c in self._clusters.values()]
        return sorted(clusters, key=lambda c: c.created_at or "")

    def update_cluster(self, cluster: Cluster) -> Cluster:
        with self._clusters_lock.write():
            existing = self._clusters.get(cluster.id) if cluster.id else None
            if existing is None:
                raise NotFound("Cluster not found.")
            record = replace(copy.deepcopy(cluster), created_at=existing.created_at)
            self._clusters[cluster.id] = record
        return copy.deepcopy(record)

    def delete_cluster(self, cluster_id: str) -> bool:
        with self._clusters_lock.write():
            return self._clusters.pop(cluster_id, None) is not None

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def add_policy(self, policy: Policy) -> Policy:
        record = copy.deepcopy(policy)
        record.id = record.id or new_id()
        record.created_at = record.created_at or now_iso()
        with self._policies_lock.write():
            if record.id in self._policies:
                raise Conflict("A policy with that id already exists.")
            self._policies[record.id] = record
        return copy.deepcopy(record)

    def get_policy(self, policy_id: str) -> Policy:
        with self._policies_lock.read():
            policy = self._policies.get(policy_id)
            if policy is None:
                raise NotFound("Policy not found.")
            return copy.deepcopy(policy)

    def list_policies(self) -> list[Policy]:
        with self._policies_lock.read():
            policies = [copy.deepcopy(p) for p in self._policies.values()]
        return sorted(policies, key=lambda p: p.created_at or "")

    def delete_policy(self, policy_id: str) -> bool:
        with self._policies_lock.write():
            return self._policies.pop(policy_id, None) is not None

    # ------------------------------------------------------------------
    # Alerts and incident reports
    # ------------------------------------------------------------------

    def add_alert(self, alert: Alert) -> Alert:
        record = copy.deepcopy(alert)
        record.id = record.id or new_id()
        record.timestamp = record.timestamp or now_iso()
        with self._alerts_lock.write():
            if any(a.id == record.id for a in self._alerts):
                raise Conflict("An alert with that id already exists.")
            self._alerts.append(record)
        return copy.deepcopy(record)

    def list_alerts(self) -> list[Alert]:
        with self._alerts_lock.read():
            alerts = [copy.deepcopy(a) for a in self._alerts]
        return sorted(alerts, key=lambda a: a.timestamp or "", reverse=True)

    def add_report(self, report: IncidentReport) -> IncidentReport:
        record = copy.deepcopy(report)
        record.id = record.id or new_id()
        record.timestamp = record.timestamp or now_iso()
        with self._reports_lock.write():
            if any(r.id == record.id for r in self._reports):
                raise Conflict("A report with that id already exists.")
            self._reports.append(record)
        return copy.deepcopy(record)

    def list_reports(self) -> list[IncidentReport]:
        with self._reports_lock.read():
            reports = [copy.deepcopy(r) for r in self._reports]
        return sorted(reports, key=lambda r: r.timestamp or "", reverse=True)

    def ping(self) -> bool:
        return True
