"""Ask the Istio sidecar to shut down through its admin endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from podwatcher.errors import ActionError, ActionErrorKind
from podwatcher.observability.logging import get_logger

if TYPE_CHECKING:
    from podwatcher.models import PodIdentity, PodSnapshot, StopIstio


log = get_logger(__name__)

DEFAULT_ISTIO_HOST = "127.0.0.1"
DEFAULT_ISTIO_PORT = 15000
DEFAULT_ISTIO_PATH = "/quitquitquit"


class IstioStopper:
    """Handler for the ``StopIstio`` action.

    POSTs to the proxy's ``quitquitquit`` endpoint. Any 2xx answer means the
    proxy accepted the request. If the latest snapshot shows the target
    container already terminated there is nothing to stop and no request is
    sent. A target missing from the snapshot is a fatal error: the proxy may
    still be running under another name.
    """

    def __init__(
        self,
        host: str = DEFAULT_ISTIO_HOST,
        port: int = DEFAULT_ISTIO_PORT,
        path: str = DEFAULT_ISTIO_PATH,
        *,
        use_pod_ip: bool = False,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.path = path
        self.use_pod_ip = use_pod_ip
        self.timeout = timeout
        self._transport = transport

    def url_for(self, snapshot: PodSnapshot | None) -> str:
        host = self.host
        if self.use_pod_ip and snapshot is not None and snapshot.pod_ip:
            host = snapshot.pod_ip
        return f"http://{host}:{self.port}{self.path}"

    async def execute(self, action: StopIstio, pod: PodIdentity, snapshot: PodSnapshot | None) -> str:
        if snapshot is not None:
            sidecar = snapshot.container(action.target_container_name)
            if sidecar is None:
                raise ActionError(
                    ActionErrorKind.FATAL,
                    f"container {action.target_container_name!r} not found in pod {pod}",
                    code="istio_container_not_found",
                    details={
                        "container": action.target_container_name,
                        "reported": [observation.name for observation in snapshot.containers],
                    },
                )
            if sidecar.stopped:
                log.info("istio_container_already_stopped", container=action.target_container_name)
                return f"container {action.target_container_name} already stopped"

        url = self.url_for(snapshot)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url)
        except httpx.TimeoutException as e:
            raise ActionError(
                ActionErrorKind.TRANSIENT,
                f"Istio shutdown request timed out: {url}",
                code="istio_timeout",
            ) from e
        except httpx.HTTPError as e:
            raise ActionError(
                ActionErrorKind.TRANSIENT,
                f"Istio shutdown request failed: {e}",
                code="istio_connection_error",
                details={"url": url},
            ) from e

        if not resp.is_success:
            raise ActionError(
                ActionErrorKind.TRANSIENT,
                f"Istio answered HTTP {resp.status_code}",
                code="istio_bad_status",
                details={"url": url, "status": resp.status_code, "body": resp.text[:200]},
            )

        log.info("istio_shutdown_requested", url=url, status=resp.status_code, pod=str(pod))
        return f"istio answered HTTP {resp.status_code}"


__all__ = ["IstioStopper"]
