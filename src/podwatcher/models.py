"""Data model for the podwatcher controller.

Everything here is immutable except the two state records owned by the
control loop: ``DebounceState`` (mutated only by the debounce gate) and
``DispatchState`` (the at-most-once latch of the action dispatcher).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Mapping

    from podwatcher.errors import PodwatcherError


@dataclass(frozen=True)
class PodIdentity:
    """The one pod governed by this controller instance."""

    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class ConditionMode(str, Enum):
    """How the states of several critical containers are combined."""

    ANY = "any"
    ALL = "all"


CriticalContainerSet: TypeAlias = tuple[str, ...]


@dataclass(frozen=True)
class Policy:
    """Resolved critical-container policy."""

    critical_containers: CriticalContainerSet
    mode: ConditionMode = ConditionMode.ANY


class ContainerPhase(str, Enum):
    """Run state of a container as reported by the cluster."""

    RUNNING = "Running"
    WAITING = "Waiting"
    TERMINATED = "Terminated"


@dataclass(frozen=True)
class ContainerObservation:
    """State of one container at the time of a single fetch."""

    name: str
    phase: ContainerPhase
    exit_code: int | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    restart_count: int = 0
    reason: str | None = None

    @property
    def stopped(self) -> bool:
        return self.phase is ContainerPhase.TERMINATED


@dataclass(frozen=True)
class PodSnapshot:
    """Result of one status fetch for the governed pod."""

    containers: tuple[ContainerObservation, ...] = ()
    annotations: Mapping[str, str] = field(default_factory=dict)
    pod_ip: str | None = None

    def container(self, name: str) -> ContainerObservation | None:
        """Return the latest observation for ``name``, if reported."""
        found = None
        for observation in self.containers:
            if observation.name == name:
                found = observation
        return found


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating the policy against one snapshot."""

    satisfied: bool
    contributing_containers: frozenset[str] = frozenset()
    missing_containers: tuple[str, ...] = ()


class GatePhase(str, Enum):
    """Debounce gate state."""

    IDLE = "idle"
    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass
class DebounceState:
    """Mutable progress of the debounce gate."""

    first_satisfied_at: float | None = None
    confirmed: bool = False


# Terminal actions. The set is closed: the dispatcher matches on exactly
# these two types.


@dataclass(frozen=True)
class DeletePod:
    """Delete the governed pod through the cluster API."""

    def describe(self) -> str:
        return "delete-pod"


@dataclass(frozen=True)
class StopIstio:
    """Ask the Istio sidecar to shut down through its local admin endpoint."""

    target_container_name: str = "istio-proxy"

    def describe(self) -> str:
        return f"stop-istio:{self.target_container_name}"


Action: TypeAlias = DeletePod | StopIstio


@dataclass
class DispatchState:
    """At-most-once latch for the terminal action."""

    fired: bool = False


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of the single dispatch of the terminal action."""

    action: Action
    success: bool
    attempts: int
    detail: str = ""
    error: PodwatcherError | None = None


class LoopOutcome(str, Enum):
    """How a controller run ended."""

    DISPATCHED = "dispatched"
    POD_GONE = "pod_gone"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def exit_code(self) -> int:
        return 1 if self is LoopOutcome.FAILED else 0


@dataclass(frozen=True)
class RunResult:
    """Final result of ``ControlLoop.run``."""

    outcome: LoopOutcome
    ticks: int
    dispatch: DispatchOutcome | None = None
    error: PodwatcherError | None = None

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code


__all__ = [
    "Action",
    "ConditionMode",
    "ContainerObservation",
    "ContainerPhase",
    "CriticalContainerSet",
    "DebounceState",
    "DeletePod",
    "DispatchOutcome",
    "DispatchState",
    "EvaluationResult",
    "GatePhase",
    "LoopOutcome",
    "PodIdentity",
    "PodSnapshot",
    "Policy",
    "RunResult",
    "StopIstio",
]
