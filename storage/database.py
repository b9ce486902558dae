"""
storage/database.py -- SQLAlchemy Core implementation of the Credential Store.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py and
storage/models.py remain the authoritative domain representation. PostgreSQL
in production; SQLite (file or shared in-memory) in tests and small installs.
Switching is a connection-string change.

Pattern: Repository + Data Mapper. DatabaseStorage is the repository; the
_row_to_* functions are the mappers.

Schema: one table per entity. Structured sub-fields (token_keys, metrics,
rules) are serialized as JSON text so the schema stays portable across
backends.

Errors: IntegrityError -> Conflict; any other SQLAlchemyError raised by a
query -> InternalError. Construction failures (unreachable server, bad
credentials) propagate as SQLAlchemyError so open_storage() can fall back.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Role, User
from core.errors import Conflict, InternalError, NotFound
from storage.base import Storage, new_id, now_iso
from storage.models import Alert, Cluster, IncidentReport, Metrics, Policy

logger = logging.getLogger("ksms.storage")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt digest
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("role", String(30), nullable=False),
    Column("token_keys", Text, nullable=False, server_default="[]"),  # JSON array
    Column("created_at", String(40), nullable=False),
)

_clusters = Table(
    "clusters",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("kube_config", Text, nullable=False),
    Column("status", String(30), nullable=False),
    Column("metrics", Text, nullable=False, server_default="{}"),  # JSON object
    Column("created_at", String(40), nullable=False),
)

_policies = Table(
    "policies",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("rules", Text, nullable=False, server_default="[]"),  # JSON array
    Column("namespace", String(255), nullable=False, server_default=""),
    Column("created_at", String(40), nullable=False),
)

_alerts = Table(
    "alerts",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("cluster_id", String(64), nullable=False),
    Column("severity", String(30), nullable=False),
    Column("message", Text, nullable=False),
    Column("timestamp", String(40), nullable=False, index=True),
)

_reports = Table(
    "reports",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("alert_id", String(64), nullable=False),
    Column("details", Text, nullable=False),
    Column("action_taken", Text, nullable=False, server_default=""),
    Column("timestamp", String(40), nullable=False, index=True),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode on SQLite so readers do not block on writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DatabaseStorage(Storage):
    """Durable Storage backed by a relational database.

    Usage:
        store = DatabaseStorage("postgresql+psycopg2://postgres:pw@localhost:5432/ksms")
        store = DatabaseStorage("sqlite:///ksms.db")
        user = store.add_user(User(email="a@x.com", hashed_password=digest))
        store.close()

    The constructor opens a connection and creates missing tables, so an
    unreachable server fails here rather than on the first request.
    """

    def __init__(self, db_url: str, connect_timeout: int = 5) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        elif db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = connect_timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError:
            self.engine.dispose()
            raise

    @contextmanager
    def _translate_errors(self, entity: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            raise Conflict(f"A {entity} with that key already exists.") from exc
        except SQLAlchemyError as exc:
            logger.error("Storage failure on %s: %s", entity, exc)
            raise InternalError("Storage backend failure.") from exc

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> User:
        record_id = user.id or new_id()
        created_at = user.created_at or now_iso()
        with self._translate_errors("user"), self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=record_id,
                    email=user.email,
                    password=user.hashed_password,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role=Role(user.role).value,
                    token_keys=json.dumps(list(user.token_keys)),
                    created_at=created_at,
                )
            )
            conn.commit()
        return self.get_user(record_id)

    def get_user(self, user_id: str) -> User:
        with self._translate_errors("user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        if row is None:
            raise NotFound("User not found.")
        return _row_to_user(row)

    def get_user_by_email(self, email: str) -> User:
        with self._translate_errors("user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        if row is None:
            raise NotFound("User not found.")
        return _row_to_user(row)

    def list_users(self) -> list[User]:
        with self._translate_errors("user"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user: User) -> User:
        if not user.id:
            raise NotFound("User not found.")
        with self._translate_errors("user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user.id)
                .values(
                    email=user.email,
                    password=user.hashed_password,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role=Role(user.role).value,
                    token_keys=json.dumps(list(user.token_keys)),
                )
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFound("User not found.")
        return self.get_user(user.id)

    def delete_user(self, user_id: str) -> bool:
        with self._translate_errors("user"), self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Clusters
    # ------------------------------------------------------------------

    def add_cluster(self, cluster: Cluster) -> Cluster:
        record_id = cluster.id or new_id()
        with self._translate_errors("cluster"), self.engine.connect() as conn:
            conn.execute(
                _clusters.insert().values(
                    id=record_id,
                    name=cluster.name,
                    kube_config=cluster.kube_config,
                    status=cluster.status,
                    metrics=json.dumps(asdict(cluster.metrics)),
                    created_at=cluster.created_at or now_iso(),
                )
            )
            conn.commit()
        return self.get_cluster(record_id)

    def get_cluster(self, cluster_id: str) -> Cluster:
        with self._translate_errors("cluster"), self.engine.connect() as conn:
            row = conn.execute(_clusters.select().where(_clusters.c.id == cluster_id)).fetchone()
        if row is None:
            raise NotFound("Cluster not found.")
        return _row_to_cluster(row)

    def list_clusters(self) -> list[Cluster]:
        with self._translate_errors("cluster"), self.engine.connect() as conn:
            rows = conn.execute(_clusters.select().order_by(_clusters.c.created_at)).fetchall()
        return [_row_to_cluster(r) for r in rows]

    def update_cluster(self, cluster: Cluster) -> Cluster:
        if not cluster.id:
            raise NotFound("Cluster not found.")
        with self._translate_errors("cluster"), self.engine.connect() as conn:
            result = conn.execute(
                _clusters.update()
                .where(_clusters.c.id == cluster.id)
                .values(
                    name=cluster.name,
                    kube_config=cluster.kube_config,
                    status=cluster.status,
                    metrics=json.dumps(asdict(cluster.metrics)),
                )
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFound("Cluster not found.")
        return self.get_cluster(cluster.id)

    def delete_cluster(self, cluster_id: str) -> bool:
        with self._translate_errors("cluster"), self.engine.connect() as conn:
            result = conn.execute(_clusters.delete().where(_clusters.c.id == cluster_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def add_policy(self, policy: Policy) -> Policy:
        record_id = policy.id or new_id()
        with self._translate_errors("policy"), self.engine.connect() as conn:
            conn.execute(
                _policies.insert().values(
                    id=record_id,
                    name=policy.name,
                    description=policy.description,
                    rules=json.dumps(list(policy.rules)),
                    namespace=policy.namespace,
                    created_at=policy.created_at or now_iso(),
                )
            )
            conn.commit()
        return self.get_policy(record_id)

    def get_policy(self, policy_id: str) -> Policy:
        with self._translate_errors("policy"), self.engine.connect() as conn:
            row = conn.execute(_policies.select().where(_policies.c.id == policy_id)).fetchone()
        if row is None:
            raise NotFound("Policy not found.")
        return _row_to_policy(row)

    def list_policies(self) -> list[Policy]:
        with self._translate_errors("policy"), self.engine.connect() as conn:
            rows = conn.execute(_policies.select().order_by(_policies.c.created_at)).fetchall()
        return [_row_to_policy(r) for r in rows]

    def delete_policy(self, policy_id: str) -> bool:
        with self._translate_errors("policy"), self.engine.connect() as conn:
            result = conn.execute(_policies.delete().where(_policies.c.id == policy_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Alerts and incident reports
    # ------------------------------------------------------------------

    def add_alert(self, alert: Alert) -> Alert:
        record = Alert(
            id=alert.id or new_id(),
            cluster_id=alert.cluster_id,
            severity=alert.severity,
            message=alert.message,
            timestamp=alert.timestamp or now_iso(),
        )
        with self._translate_errors("alert"), self.engine.connect() as conn:
            conn.execute(_alerts.insert().values(**asdict(record)))
            conn.commit()
        return record

    def list_alerts(self) -> list[Alert]:
        with self._translate_errors("alert"), self.engine.connect() as conn:
            rows = conn.execute(_alerts.select().order_by(_alerts.c.timestamp.desc())).fetchall()
        return [
            Alert(id=r.id, cluster_id=r.cluster_id, severity=r.severity, message=r.message, timestamp=r.timestamp)
            for r in rows
        ]

    def add_report(self, report: IncidentReport) -> IncidentReport:
        record = IncidentReport(
            id=report.id or new_id(),
            alert_id=report.alert_id,
            details=report.details,
            action_taken=report.action_taken,
            timestamp=report.timestamp or now_iso(),
        )
        with self._translate_errors("report"), self.engine.connect() as conn:
            conn.execute(_reports.insert().values(**asdict(record)))
            conn.commit()
        return record

    def list_reports(self) -> list[IncidentReport]:
        with self._translate_errors("report"), self.engine.connect() as conn:
            rows = conn.execute(_reports.select().order_by(_reports.c.timestamp.desc())).fetchall()
        return [
            IncidentReport(
                id=r.id,
                alert_id=r.alert_id,
                details=r.details,
                action_taken=r.action_taken,
                timestamp=r.timestamp,
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.password,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        role=Role(row.role),
        token_keys=json.loads(row.token_keys or "[]"),
        created_at=row.created_at,
    )


def _row_to_cluster(row) -> Cluster:
    raw_metrics = json.loads(row.metrics or "{}")
    return Cluster(
        id=row.id,
        name=row.name,
        kube_config=row.kube_config,
        status=row.status,
        metrics=Metrics(
            cpu_usage=float(raw_metrics.get("cpu_usage", 0.0)),
            memory_usage=float(raw_metrics.get("memory_usage", 0.0)),
            pod_count=int(raw_metrics.get("pod_count", 0)),
        ),
        created_at=row.created_at,
    )


def _row_to_policy(row) -> Policy:
    return Policy(
        id=row.id,
        name=row.name,
        description=row.description or "",
        rules=json.loads(row.rules or "[]"),
        namespace=row.namespace or "",
        created_at=row.created_at,
    )
