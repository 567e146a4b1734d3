"""Cluster-backed source of the governed pod's container states."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import urllib3
from kubernetes import client

from podwatcher.errors import SnapshotError, SnapshotErrorKind
from podwatcher.kubernetes.client import AUTH_STATUSES, HTTP_NOT_FOUND, api_status
from podwatcher.models import ContainerObservation, ContainerPhase, PodSnapshot
from podwatcher.observability.logging import get_logger

if TYPE_CHECKING:
    from podwatcher.models import PodIdentity


log = get_logger(__name__)


def observation_from_status(status: Any) -> ContainerObservation:
    """Map a ``V1ContainerStatus`` to an observation."""
    state = status.state
    restart_count = status.restart_count or 0

    if state is not None and state.terminated is not None:
        terminated = state.terminated
        return ContainerObservation(
            name=status.name,
            phase=ContainerPhase.TERMINATED,
            exit_code=terminated.exit_code,
            started_at=terminated.started_at,
            finished_at=terminated.finished_at,
            restart_count=restart_count,
            reason=terminated.reason,
        )

    if state is not None and state.running is not None:
        return ContainerObservation(
            name=status.name,
            phase=ContainerPhase.RUNNING,
            started_at=state.running.started_at,
            restart_count=restart_count,
        )

    reason = state.waiting.reason if state is not None and state.waiting is not None else None
    return ContainerObservation(
        name=status.name,
        phase=ContainerPhase.WAITING,
        restart_count=restart_count,
        reason=reason,
    )


def snapshot_from_pod(pod: Any) -> PodSnapshot:
    """Build a snapshot from a ``V1Pod``.

    A pod without a status or container statuses yields no observations, which
    the evaluator treats as nothing having stopped yet.
    """
    annotations = dict((pod.metadata.annotations if pod.metadata else None) or {})

    if pod.status is None:
        log.warning("pod_without_status_assuming_running")
        return PodSnapshot(annotations=annotations)

    statuses = pod.status.container_statuses
    if not statuses:
        log.warning("pod_without_container_statuses_assuming_running")
        return PodSnapshot(annotations=annotations, pod_ip=pod.status.pod_ip)

    return PodSnapshot(
        containers=tuple(observation_from_status(status) for status in statuses),
        annotations=annotations,
        pod_ip=pod.status.pod_ip,
    )


class KubernetesSnapshotSource:
    """Read the governed pod from the cluster API.

    The blocking client call runs in a worker thread. ``request_timeout`` is
    handed to the client so the thread finishes even when the control loop has
    already given up on the await.
    """

    def __init__(self, core_api: client.CoreV1Api, *, request_timeout: float = 10.0) -> None:
        self.core_api = core_api
        self.request_timeout = request_timeout

    async def fetch(self, pod: PodIdentity) -> PodSnapshot:
        try:
            body = await asyncio.to_thread(
                self.core_api.read_namespaced_pod,
                pod.name,
                pod.namespace,
                _request_timeout=self.request_timeout,
            )
        except client.ApiException as e:
            raise self._classify(e, pod) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise SnapshotError(
                SnapshotErrorKind.TRANSIENT,
                f"unable to reach the Kubernetes API: {e}",
                code="snapshot_connection_error",
                details={"pod": str(pod)},
            ) from e

        return snapshot_from_pod(body)

    @staticmethod
    def _classify(error: client.ApiException, pod: PodIdentity) -> SnapshotError:
        status = api_status(error)
        details = {"pod": str(pod), "status": status, "reason": error.reason}

        if status == HTTP_NOT_FOUND:
            return SnapshotError(SnapshotErrorKind.NOT_FOUND, f"pod {pod} not found", details=details)
        if status in AUTH_STATUSES:
            return SnapshotError(
                SnapshotErrorKind.FORBIDDEN,
                f"not allowed to read pod {pod}: {error.reason}",
                details=details,
            )
        return SnapshotError(
            SnapshotErrorKind.TRANSIENT,
            f"Kubernetes API error: {error.reason}",
            details=details,
        )


__all__ = ["KubernetesSnapshotSource", "observation_from_status", "snapshot_from_pod"]
