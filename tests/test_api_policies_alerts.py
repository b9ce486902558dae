"""
tests/test_api_policies_alerts.py -- Integration tests for policies, alerts, and reports.

Covers:
  - Policy CRUD and its role gate
  - Alert and report listings (newest first, authenticated only)
  - The SSE snapshot generator: frames, disconnect, and store failure
"""

from __future__ import annotations

import asyncio
import json

from api.routes.v1.alerts import alert_snapshots
from core.errors import InternalError
from storage.memory import MemoryStorage
from storage.models import Alert, IncidentReport


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


def test_policy_lifecycle(api):
    client, _, tokens = api
    resp = client.post(
        "/api/v1/policies",
        json={"name": "no-privileged", "description": "Deny privileged pods", "rules": ["deny privileged"], "namespace": "prod"},
        headers=_auth(tokens["analyst"]),
    )
    assert resp.status_code == 201
    policy = resp.json()
    assert policy["rules"] == ["deny privileged"]

    fetched = client.get(f"/api/v1/policies/{policy['id']}", headers=_auth(tokens["student"]))
    assert fetched.status_code == 200
    assert fetched.json()["namespace"] == "prod"

    listed = client.get("/api/v1/policies", headers=_auth(tokens["student"])).json()
    assert any(p["id"] == policy["id"] for p in listed)

    assert client.delete(f"/api/v1/policies/{policy['id']}", headers=_auth(tokens["admin"])).status_code == 204
    assert client.get(f"/api/v1/policies/{policy['id']}", headers=_auth(tokens["admin"])).status_code == 404


def test_policy_mutations_need_operator(api):
    client, _, tokens = api
    resp = client.post("/api/v1/policies", json={"name": "x"}, headers=_auth(tokens["student"]))
    assert resp.status_code == 403
    assert client.post("/api/v1/policies", json={"name": "x"}).status_code == 401
    assert client.delete("/api/v1/policies/any", headers=_auth(tokens["student"])).status_code == 403


def test_policy_reads_need_auth(api):
    client, _, _ = api
    assert client.get("/api/v1/policies").status_code == 401


def test_policy_without_name_is_400(api):
    client, _, tokens = api
    assert client.post("/api/v1/policies", json={"description": "d"}, headers=_auth(tokens["admin"])).status_code == 400


# ---------------------------------------------------------------------------
# Alerts and reports
# ---------------------------------------------------------------------------


def test_alerts_newest_first(api):
    client, storage, tokens = api
    storage.add_alert(Alert(cluster_id="c1", severity="low", message="first", timestamp="2024-05-01T00:00:00+00:00"))
    storage.add_alert(Alert(cluster_id="c1", severity="high", message="second", timestamp="2024-05-02T00:00:00+00:00"))
    resp = client.get("/api/v1/alerts", headers=_auth(tokens["student"]))
    assert resp.status_code == 200
    messages = [a["message"] for a in resp.json()]
    assert messages.index("second") < messages.index("first")


def test_reports_listed(api):
    client, storage, tokens = api
    storage.add_report(IncidentReport(alert_id="a1", details="Pod evicted", action_taken="evict"))
    resp = client.get("/api/v1/reports", headers=_auth(tokens["student"]))
    assert resp.status_code == 200
    assert any(r["details"] == "Pod evicted" and r["action_taken"] == "evict" for r in resp.json())


def test_alerts_and_reports_require_auth(api):
    client, _, _ = api
    assert client.get("/api/v1/alerts").status_code == 401
    assert client.get("/api/v1/reports").status_code == 401
    assert client.get("/api/v1/alerts/stream").status_code == 401


# ---------------------------------------------------------------------------
# SSE generator
# ---------------------------------------------------------------------------


def _disconnect_after(ticks: int):
    state = {"calls": 0}

    async def is_disconnected() -> bool:
        state["calls"] += 1
        return state["calls"] > ticks

    return is_disconnected


async def _collect(gen) -> list[str]:
    return [frame async for frame in gen]


def test_stream_emits_one_snapshot_per_tick_until_disconnect():
    storage = MemoryStorage()
    storage.add_alert(Alert(cluster_id="c1", severity="high", message="breach"))
    frames = asyncio.run(_collect(alert_snapshots(storage, _disconnect_after(2), interval=0)))
    assert len(frames) == 2
    for frame in frames:
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        payload = json.loads(frame[len("data: ") :])
        assert payload[0]["message"] == "breach"


def test_stream_ends_immediately_for_disconnected_client():
    frames = asyncio.run(_collect(alert_snapshots(MemoryStorage(), _disconnect_after(0), interval=0)))
    assert frames == []


def test_stream_store_failure_ends_with_error_event():
    class BrokenStorage(MemoryStorage):
        def list_alerts(self):
            raise InternalError("Storage backend failure.")

    frames = asyncio.run(_collect(alert_snapshots(BrokenStorage(), _disconnect_after(5), interval=0)))
    assert len(frames) == 1
    assert frames[0].startswith("event: error\n")
    assert "internal_error" in frames[0]
