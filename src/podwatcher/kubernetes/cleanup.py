"""Delete the governed pod (and optionally its controlling Job)."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import urllib3
from kubernetes import client

from podwatcher.errors import ActionError, ActionErrorKind
from podwatcher.kubernetes.client import (
    AUTH_STATUSES,
    HTTP_CONFLICT,
    HTTP_NOT_FOUND,
    HTTP_TOO_MANY_REQUESTS,
    api_status,
)
from podwatcher.observability.logging import get_logger

if TYPE_CHECKING:
    from podwatcher.models import DeletePod, PodIdentity, PodSnapshot


log = get_logger(__name__)

HTTP_SERVER_ERROR = 500


def controlling_job(pod: Any) -> str | None:
    """Name of the Job that controls ``pod``, if any."""
    metadata = pod.metadata
    for ref in (metadata.owner_references if metadata else None) or []:
        if ref.controller and ref.kind == "Job":
            return ref.name
    return None


def classify_delete_error(error: client.ApiException, target: str) -> ActionError:
    """Map a failed delete to a transient or fatal action error."""
    status = api_status(error)
    details = {"target": target, "status": status, "reason": error.reason}

    if status in AUTH_STATUSES:
        return ActionError(
            ActionErrorKind.FATAL,
            f"not allowed to delete {target}: {error.reason}",
            code="delete_forbidden",
            details=details,
        )
    if status in (0, HTTP_CONFLICT, HTTP_TOO_MANY_REQUESTS) or status >= HTTP_SERVER_ERROR:
        return ActionError(
            ActionErrorKind.TRANSIENT,
            f"deleting {target} failed: {error.reason}",
            code="delete_failed",
            details=details,
        )
    return ActionError(
        ActionErrorKind.FATAL,
        f"deleting {target} was rejected: {error.reason}",
        code="delete_rejected",
        details=details,
    )


class PodDeleter:
    """Handler for the ``DeletePod`` action.

    A pod that is already gone counts as deleted. With ``delete_owner_job``
    the pod's controlling Job is deleted first, so the Job controller does not
    replace the pod. Every API call carries ``request_timeout``.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        batch_api: client.BatchV1Api | None = None,
        *,
        delete_owner_job: bool = False,
        request_timeout: float = 10.0,
    ) -> None:
        self.core_api = core_api
        self.batch_api = batch_api
        self.delete_owner_job = delete_owner_job
        self.request_timeout = request_timeout

    async def execute(self, action: DeletePod, pod: PodIdentity, snapshot: PodSnapshot | None) -> str:
        try:
            if self.delete_owner_job and self.batch_api is not None:
                found, job = await self._owner_job(pod)
                if not found:
                    log.info("pod_already_deleted", pod=str(pod))
                    return "pod already deleted"
                if job is not None:
                    await self._delete(
                        f"Job {pod.namespace}/{job}",
                        self.batch_api.delete_namespaced_job,
                        job,
                        pod.namespace,
                        propagation_policy="Background",
                    )

            deleted = await self._delete(
                f"Pod {pod}",
                self.core_api.delete_namespaced_pod,
                pod.name,
                pod.namespace,
            )
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise ActionError(
                ActionErrorKind.TRANSIENT,
                f"unable to reach the Kubernetes API: {e}",
                code="delete_connection_error",
            ) from e

        return "pod deleted" if deleted else "pod already deleted"

    async def _owner_job(self, pod: PodIdentity) -> tuple[bool, str | None]:
        """Return whether the pod still exists and its controlling Job."""
        try:
            body = await asyncio.to_thread(
                self.core_api.read_namespaced_pod,
                pod.name,
                pod.namespace,
                _request_timeout=self.request_timeout,
            )
        except client.ApiException as e:
            if api_status(e) == HTTP_NOT_FOUND:
                return False, None
            raise classify_delete_error(e, f"Pod {pod}") from e
        return True, controlling_job(body)

    async def _delete(self, target: str, call: Any, name: str, namespace: str, **kwargs: Any) -> bool:
        """Delete one resource; False when it was already gone."""
        log.info("deleting_resource", target=target)
        try:
            await asyncio.to_thread(call, name, namespace, _request_timeout=self.request_timeout, **kwargs)
        except client.ApiException as e:
            if api_status(e) != HTTP_NOT_FOUND:
                raise classify_delete_error(e, target) from e
            log.info("resource_already_deleted", target=target)
            return False
        return True


__all__ = ["PodDeleter", "classify_delete_error", "controlling_job"]
