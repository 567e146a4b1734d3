"""Wire settings, cluster clients and the control loop together.

Everything process-wide is resolved here, once, into a ``ControllerConfig``
and a set of collaborators that are passed explicitly to the loop.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubernetes import client

from podwatcher.core.dispatcher import ActionDispatcher
from podwatcher.core.loop import ControlLoop, ControllerConfig
from podwatcher.errors import ConfigurationError, PodwatcherError, PolicyError
from podwatcher.kubernetes.cleanup import PodDeleter
from podwatcher.kubernetes.client import load_config
from podwatcher.kubernetes.snapshot import KubernetesSnapshotSource
from podwatcher.models import DeletePod, LoopOutcome, PodIdentity, RunResult, StopIstio
from podwatcher.observability.logging import get_logger
from podwatcher.observability.metrics import MetricsCollector
from podwatcher.sidecar.istio import IstioStopper

if TYPE_CHECKING:
    from podwatcher.config.settings import Settings
    from podwatcher.core.loop import SnapshotSource
    from podwatcher.models import Action, Policy


log = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_POLICY = 2


def pod_identity(settings: Settings) -> PodIdentity:
    """Identity of the governed pod from the runtime environment."""
    if not settings.pod.name:
        msg = "pod name unknown: set POD_NAME (downward API) or PODWATCHER_POD_NAME"
        raise ConfigurationError(msg)
    return PodIdentity(name=settings.pod.name, namespace=settings.pod.resolved_namespace())


def build_config(settings: Settings, action: Action, policy: Policy | None = None) -> ControllerConfig:
    watcher = settings.watcher
    return ControllerConfig(
        pod=pod_identity(settings),
        action=action,
        policy=policy,
        critical_annotation=watcher.critical_annotation,
        condition_annotation=watcher.condition_annotation,
        grace_window=watcher.grace_seconds,
        poll_interval=watcher.poll_interval_seconds,
        fetch_timeout=watcher.fetch_timeout_seconds,
        fetch_attempts=watcher.fetch_attempts,
        backoff=watcher.backoff_seconds,
        max_backoff=watcher.max_backoff_seconds,
    )


def build_dispatcher(settings: Settings, action: Action, metrics: MetricsCollector | None = None) -> ActionDispatcher:
    """Dispatcher with the handler the chosen action needs."""
    delete_pod: PodDeleter | None = None
    stop_istio: IstioStopper | None = None
    match action:
        case DeletePod():
            delete_pod = PodDeleter(
                client.CoreV1Api(),
                client.BatchV1Api(),
                delete_owner_job=settings.action.delete_owner_job,
                request_timeout=settings.action.timeout_seconds,
            )
        case StopIstio():
            stop_istio = IstioStopper(
                settings.istio.host,
                settings.istio.port,
                settings.istio.path,
                use_pod_ip=settings.istio.use_pod_ip,
                timeout=settings.action.timeout_seconds,
            )

    return ActionDispatcher(
        delete_pod=delete_pod,
        stop_istio=stop_istio,
        attempts=settings.action.attempts,
        timeout=settings.action.timeout_seconds,
        backoff=settings.action.backoff_seconds,
        metrics=metrics,
    )


def build_source(settings: Settings) -> SnapshotSource:
    load_config(settings.kubernetes)
    return KubernetesSnapshotSource(client.CoreV1Api(), request_timeout=settings.watcher.fetch_timeout_seconds)


def install_signal_handlers(loop: ControlLoop) -> None:
    """Cancel the run on SIGTERM/SIGINT."""
    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            event_loop.add_signal_handler(sig, loop.stop)
        except (NotImplementedError, RuntimeError):
            log.debug("signal_handler_unavailable", signal=sig.name)


async def run_controller(
    config: ControllerConfig,
    source: SnapshotSource,
    dispatcher: ActionDispatcher,
    *,
    metrics: MetricsCollector | None = None,
    handle_signals: bool = True,
) -> RunResult:
    control_loop = ControlLoop(config, source, dispatcher, metrics=metrics)
    if handle_signals:
        install_signal_handlers(control_loop)
    return await control_loop.run()


def exit_code_for(result: RunResult) -> int:
    if isinstance(result.error, PolicyError):
        return EXIT_INVALID_POLICY
    return result.outcome.exit_code


def run(settings: Settings, action: Action, policy: Policy | None = None) -> int:
    """Run the controller to completion and return the process exit code."""
    metrics = MetricsCollector(namespace=settings.observability.metrics_namespace)
    metrics.set_build_info(settings.version)

    try:
        config = build_config(settings, action, policy)
        source = build_source(settings)
        dispatcher = build_dispatcher(settings, action, metrics)
    except PodwatcherError as e:
        log.error("controller_configuration_failed", error=e.to_dict())
        return EXIT_INVALID_POLICY
    except Exception as e:
        log.exception("controller_setup_failed", error=str(e))
        return EXIT_FAILURE

    if settings.observability.metrics_enabled:
        metrics.serve(settings.observability.metrics_port)
        log.info("metrics_server_started", port=settings.observability.metrics_port)

    log.info(
        "starting_podwatcher",
        version=settings.version,
        pod=str(config.pod),
        action=action.describe(),
    )
    result = asyncio.run(run_controller(config, source, dispatcher, metrics=metrics))

    if result.outcome is LoopOutcome.FAILED:
        log.error("controller_failed", error=result.error.to_dict() if result.error else None)
    return exit_code_for(result)


__all__ = [
    "EXIT_FAILURE",
    "EXIT_INVALID_POLICY",
    "EXIT_OK",
    "build_config",
    "build_dispatcher",
    "build_source",
    "exit_code_for",
    "pod_identity",
    "run",
    "run_controller",
]
