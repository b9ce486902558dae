"""
clusters/cache.py -- Process-wide memo of one Kubernetes client per cluster id.

Per cluster id:  absent -> (first get_client) -> ready
                                              -> construction failed (nothing cached)

get_client() uses double-checked locking: a read-locked lookup serves the hot
path; on a miss the write lock is taken and the map re-checked before
building, so N concurrent first accesses for one id construct exactly one
client and all N callers get that instance.

A cache hit returns the stored client without any network validation.
Connectivity is verified once, at registration (see api/routes/v1/clusters.py).

Entries are dropped by invalidate(), which the cluster delete route calls, so
a deleted registration never keeps serving its old credentials. There is no
TTL: a cluster whose kube-config changes remotely keeps its client until it
is invalidated.

Usage:
    cache = ClusterClientCache()
    api_client = cache.get_client(cluster.id, cluster.kube_config)
    cache.invalidate(cluster.id)
    cache.close()
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from kubernetes.client import ApiClient

from clusters.client import build_client
from core.rwlock import RWLock

logger = logging.getLogger("ksms.clusters")


class ClusterClientCache:
    def __init__(self, factory: Callable[[str], ApiClient] = build_client) -> None:
        self._factory = factory
        self._clients: dict[str, ApiClient] = {}
        self._lock = RWLock()

    def get_client(self, cluster_id: str, kube_config: str) -> ApiClient:
        """Return the cached client for cluster_id, building it on first access.

        Raises InvalidCredentials (from the factory) if kube_config cannot be
        parsed; nothing is cached in that case.
        """
        with self._lock.read():
            cached = self._clients.get(cluster_id)
        if cached is not None:
            return cached

        with self._lock.write():
            cached = self._clients.get(cluster_id)
            if cached is not None:
                return cached
            api_client = self._factory(kube_config)
            self._clients[cluster_id] = api_client
        logger.info("Cached client for cluster %s", cluster_id)
        return api_client

    def register(self, cluster_id: str, api_client: ApiClient) -> ApiClient:
        """Cache a client that was already built (e.g. during registration).

        If a client for cluster_id is already cached, that one wins: the
        offered client is closed and the cached one returned.
        """
        with self._lock.write():
            cached = self._clients.get(cluster_id)
            if cached is None:
                self._clients[cluster_id] = api_client
                return api_client
        if cached is not api_client:
            _close_quietly(api_client)
        return cached

    def invalidate(self, cluster_id: str) -> bool:
        """Drop and close the client for cluster_id. Returns True if one was cached."""
        with self._lock.write():
            api_client = self._clients.pop(cluster_id, None)
        if api_client is None:
            return False
        _close_quietly(api_client)
        logger.info("Invalidated cached client for cluster %s", cluster_id)
        return True

    def close(self) -> None:
        """Close every cached client. Called at shutdown."""
        with self._lock.write():
            clients = list(self._clients.values())
            self._clients.clear()
        for api_client in clients:
            _close_quietly(api_client)

    def __contains__(self, cluster_id: object) -> bool:
        with self._lock.read():
            return cluster_id in self._clients

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._clients)


def _close_quietly(api_client) -> None:
    close = getattr(api_client, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception:  # noqa: BLE001
        logger.warning("Error closing Kubernetes client", exc_info=True)
