"""
clusters/client.py -- Build Kubernetes API clients and probe remote clusters.

Construction and verification are separate on purpose:
  build_client()        parses the kube-config locally. No network traffic.
  verify_connectivity() one round trip (GET /version). Called at registration
                        and on explicit refresh, never on a cache hit.
  count_pods()          one round trip listing pods across all namespaces.

Each client gets its own kubernetes.client.Configuration (via
new_client_from_config_dict), so clusters never share credentials through the
library's global default configuration.

Every remote call passes an explicit _request_timeout; the library default
is to wait forever.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

import yaml
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client import ApiClient
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from core.errors import InvalidCredentials, Unreachable

logger = logging.getLogger("ksms.clusters")

DEFAULT_TIMEOUT = 10.0


def build_client(kube_config: str) -> ApiClient:
    """Return an ApiClient configured from a raw kube-config document.

    Raises InvalidCredentials if the payload is not YAML, is not a mapping,
    or lacks what the kubernetes loader needs (current-context, cluster
    server, user credentials).
    """
    try:
        document = yaml.safe_load(kube_config)
    except yaml.YAMLError as exc:
        raise InvalidCredentials("Invalid kube-config: " + str(exc)) from exc
    if not isinstance(document, Mapping):
        raise InvalidCredentials("Invalid kube-config: expected a YAML mapping")

    try:
        return k8s_config.new_client_from_config_dict(config_dict=dict(document), persist_config=False)
    except (ConfigException, AttributeError, KeyError, TypeError, ValueError) as exc:
        raise InvalidCredentials("Invalid kube-config: " + str(exc)) from exc


def verify_connectivity(api_client: ApiClient, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Probe the API server version. Returns the server's gitVersion.

    Raises Unreachable on any network, TLS, or API-auth failure.
    """
    try:
        info = k8s_client.VersionApi(api_client).get_code(_request_timeout=timeout)
    except (ApiException, HTTPError, OSError) as exc:
        raise Unreachable("Could not connect to cluster: " + str(exc)) from exc
    return getattr(info, "git_version", "") or ""


def count_pods(api_client: ApiClient, timeout: float = DEFAULT_TIMEOUT) -> int:
    """Return the number of pods across all namespaces."""
    try:
        pods = k8s_client.CoreV1Api(api_client).list_pod_for_all_namespaces(_request_timeout=timeout)
    except (ApiException, HTTPError, OSError) as exc:
        raise Unreachable("Could not list pods: " + str(exc)) from exc
    return len(pods.items or [])
