"""Pytest configuration and fixtures for podwatcher tests."""

from __future__ import annotations

import os
from collections.abc import Callable, Generator, Sequence
from typing import Any

import pytest
from kubernetes import client

from podwatcher.errors import SnapshotError
from podwatcher.models import ContainerObservation, ContainerPhase, PodIdentity, PodSnapshot


# Ensure tests never pick up a real pod identity or metrics server
os.environ["PODWATCHER_POD_NAME"] = "test-pod"
os.environ["PODWATCHER_POD_NAMESPACE"] = "default"
os.environ.setdefault("PODWATCHER_OBSERVABILITY_METRICS_ENABLED", "false")


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Reset settings cache before each test."""
    from podwatcher.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def pod() -> PodIdentity:
    return PodIdentity(name="test-pod", namespace="default")


@pytest.fixture
def make_snapshot() -> Callable[..., PodSnapshot]:
    """Build a snapshot from ``name=phase`` keyword arguments."""

    def _make(annotations: dict[str, str] | None = None, pod_ip: str | None = None, **phases: str) -> PodSnapshot:
        containers = tuple(
            ContainerObservation(
                name=name,
                phase=ContainerPhase(phase),
                exit_code=0 if phase == "Terminated" else None,
            )
            for name, phase in phases.items()
        )
        return PodSnapshot(containers=containers, annotations=annotations or {}, pod_ip=pod_ip)

    return _make


class ScriptedSource:
    """Snapshot source returning (or raising) scripted results in order.

    The last entry repeats once the script is exhausted.
    """

    def __init__(self, script: Sequence[PodSnapshot | SnapshotError]) -> None:
        self.script = list(script)
        self.calls = 0

    async def fetch(self, pod: PodIdentity) -> PodSnapshot:
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, SnapshotError):
            raise item
        return item


@pytest.fixture
def scripted_source() -> type[ScriptedSource]:
    return ScriptedSource


class RecordingHandler:
    """Action handler that records calls and replays scripted failures."""

    def __init__(self, failures: Sequence[Exception] = (), detail: str = "done") -> None:
        self.failures = list(failures)
        self.detail = detail
        self.calls: list[tuple[Any, PodIdentity]] = []

    async def execute(self, action: Any, pod: PodIdentity, snapshot: PodSnapshot | None) -> str:
        self.calls.append((action, pod))
        if self.failures:
            raise self.failures.pop(0)
        return self.detail


@pytest.fixture
def recording_handler() -> type[RecordingHandler]:
    return RecordingHandler


@pytest.fixture
def no_sleep() -> Callable[[float], Any]:
    """Replacement for asyncio.sleep that records delays without waiting."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def make_k8s_pod() -> Callable[..., client.V1Pod]:
    """Build a ``V1Pod`` with container statuses from ``name=state`` pairs.

    States are "running", "terminated", "waiting" or None (no state).
    """

    def _state(kind: str | None) -> client.V1ContainerState | None:
        if kind == "running":
            return client.V1ContainerState(running=client.V1ContainerStateRunning(started_at=None))
        if kind == "terminated":
            return client.V1ContainerState(
                terminated=client.V1ContainerStateTerminated(exit_code=0, reason="Completed"),
            )
        if kind == "waiting":
            return client.V1ContainerState(waiting=client.V1ContainerStateWaiting(reason="CrashLoopBackOff"))
        return None

    def _make(
        annotations: dict[str, str] | None = None,
        owner_job: str | None = None,
        pod_ip: str | None = "10.0.0.7",
        with_status: bool = True,
        **states: str | None,
    ) -> client.V1Pod:
        owners = None
        if owner_job:
            owners = [
                client.V1OwnerReference(
                    api_version="batch/v1",
                    kind="Job",
                    name=owner_job,
                    uid="job-uid",
                    controller=True,
                )
            ]
        metadata = client.V1ObjectMeta(
            name="test-pod",
            namespace="default",
            annotations=annotations,
            owner_references=owners,
        )
        if not with_status:
            return client.V1Pod(metadata=metadata, status=None)

        statuses = [
            client.V1ContainerStatus(
                name=name,
                image="busybox",
                image_id="busybox@sha256:0",
                ready=kind == "running",
                restart_count=1 if kind == "waiting" else 0,
                state=_state(kind),
            )
            for name, kind in states.items()
        ]
        return client.V1Pod(
            metadata=metadata,
            status=client.V1PodStatus(container_statuses=statuses or None, pod_ip=pod_ip),
        )

    return _make
