"""
api/routes/v1/clusters.py -- Cluster registration endpoints.

Routes:
  GET    /api/v1/clusters                -- list registrations (any authenticated caller)
  POST   /api/v1/clusters                -- register a cluster (Administrator, Security Analyst)
  POST   /api/v1/clusters/{id}/refresh   -- re-probe through the client cache (same roles)
  DELETE /api/v1/clusters/{id}           -- delete and drop the cached client (same roles)

Registration outcome:
  kube-config cannot be parsed       -> 400 invalid_credentials, nothing stored
  parsed, cluster probe fails        -> 201, stored with status "Error"
  parsed, version + pod probes pass  -> 201, stored with status "Connected"

Storing a cluster that failed its probe is deliberate: "could register" and
"could connect" are different facts, and refresh can flip the status later.

kube_config is never part of a response.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, Request, Response

from api.models import ClusterCreate, ClusterResponse
from auth.dependencies import get_current_session, require_operator
from auth.models import SessionClaims
from clusters import client as kube
from clusters.cache import ClusterClientCache
from core.errors import KsmsError, NotFound, Unreachable
from storage.base import Storage
from storage.models import CLUSTER_CONNECTED, CLUSTER_ERROR, Cluster, Metrics

logger = logging.getLogger("ksms.api")

router = APIRouter()


def _probe(api_client, timeout: float) -> tuple[str, Metrics | None, str | None]:
    """Run the version and pod-count probes.

    Returns (status, metrics, detail). metrics is None when the probe failed;
    detail carries the failure message.
    """
    try:
        kube.verify_connectivity(api_client, timeout)
        pod_count = kube.count_pods(api_client, timeout)
    except Unreachable as exc:
        return CLUSTER_ERROR, None, exc.message
    return CLUSTER_CONNECTED, Metrics(pod_count=pod_count), None


@router.get("/clusters", response_model=list[ClusterResponse])
def list_clusters(request: Request, session: SessionClaims = Depends(get_current_session)) -> list[ClusterResponse]:
    storage: Storage = request.app.state.storage
    return [ClusterResponse.from_cluster(c) for c in storage.list_clusters()]


@router.post("/clusters", response_model=ClusterResponse, status_code=201)
def create_cluster(
    request: Request,
    body: ClusterCreate,
    session: SessionClaims = Depends(require_operator),
) -> ClusterResponse:
    storage: Storage = request.app.state.storage
    cache: ClusterClientCache = request.app.state.cluster_cache
    timeout: float = request.app.state.settings.cluster_request_timeout_seconds

    api_client = kube.build_client(body.kube_config)
    status, metrics, detail = _probe(api_client, timeout)
    if detail:
        logger.warning("Cluster %r registered without connectivity: %s", body.name, detail)

    try:
        cluster = storage.add_cluster(
            Cluster(name=body.name, kube_config=body.kube_config, status=status, metrics=metrics or Metrics())
        )
    except KsmsError:
        api_client.close()
        raise
    cache.register(cluster.id, api_client)
    logger.info("Cluster %s (%s) registered by %s with status %s", cluster.id, cluster.name, session.user_id, status)
    return ClusterResponse.from_cluster(cluster, status_detail=detail)


@router.post("/clusters/{cluster_id}/refresh", response_model=ClusterResponse)
def refresh_cluster(
    request: Request,
    cluster_id: str,
    session: SessionClaims = Depends(require_operator),
) -> ClusterResponse:
    """Re-run the probes and store the new status.

    On failure the last-known metrics are kept; only the status changes.
    """
    storage: Storage = request.app.state.storage
    cache: ClusterClientCache = request.app.state.cluster_cache
    timeout: float = request.app.state.settings.cluster_request_timeout_seconds

    cluster = storage.get_cluster(cluster_id)
    api_client = cache.get_client(cluster.id, cluster.kube_config)
    status, metrics, detail = _probe(api_client, timeout)
    if detail:
        logger.warning("Cluster %s refresh failed: %s", cluster.id, detail)
    try:
        updated = storage.update_cluster(replace(cluster, status=status, metrics=metrics or cluster.metrics))
    except NotFound:
        # Deleted while the probe ran; get_client() above re-cached its handle.
        cache.invalidate(cluster_id)
        raise
    return ClusterResponse.from_cluster(updated, status_detail=detail)


@router.delete("/clusters/{cluster_id}", status_code=204)
def delete_cluster(
    request: Request,
    cluster_id: str,
    session: SessionClaims = Depends(require_operator),
) -> Response:
    """Delete a registration and its cached client. Unknown ids return 204."""
    storage: Storage = request.app.state.storage
    cache: ClusterClientCache = request.app.state.cluster_cache
    removed = storage.delete_cluster(cluster_id)
    cache.invalidate(cluster_id)
    if removed:
        logger.info("Cluster %s deleted by %s", cluster_id, session.user_id)
    return Response(status_code=204)
