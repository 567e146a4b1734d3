"""Kubernetes client construction and API error classification."""

from __future__ import annotations

from typing import TYPE_CHECKING

from kubernetes import client
from kubernetes import config as k8s_config

from podwatcher.observability.logging import get_logger

if TYPE_CHECKING:
    from podwatcher.config.settings import KubernetesSettings


log = get_logger(__name__)

# HTTP Status Codes
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_TOO_MANY_REQUESTS = 429

AUTH_STATUSES = frozenset({HTTP_UNAUTHORIZED, HTTP_FORBIDDEN})


def load_config(settings: KubernetesSettings | None = None) -> None:
    """Load in-cluster configuration, falling back to a kubeconfig file."""
    in_cluster = settings.in_cluster if settings else True
    if in_cluster:
        try:
            k8s_config.load_incluster_config()
        except k8s_config.ConfigException:
            log.info("incluster_config_unavailable_using_kubeconfig")
        else:
            return

    k8s_config.load_kube_config(
        config_file=settings.kubeconfig if settings else None,
        context=settings.context if settings else None,
    )


def api_status(error: client.ApiException) -> int:
    """Status code of an API error (0 when the request never got a response)."""
    return int(error.status or 0)


__all__ = [
    "AUTH_STATUSES",
    "HTTP_CONFLICT",
    "HTTP_FORBIDDEN",
    "HTTP_NOT_FOUND",
    "HTTP_TOO_MANY_REQUESTS",
    "HTTP_UNAUTHORIZED",
    "api_status",
    "load_config",
]
