"""The podwatcher control loop.

One sequential loop per process: fetch the pod's container states, evaluate
the critical-container policy, feed the debounce gate and, once the gate
confirms, dispatch the terminal action and stop. A tick finishes (gate
included) before the next fetch starts, so the gate and the dispatch latch
have a single mutator and need no locking.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from podwatcher.core.debounce import DebounceGate
from podwatcher.core.evaluator import evaluate
from podwatcher.core.policy import CONDITION_ANNOTATION, CRITICAL_CONTAINERS_ANNOTATION, resolve_policy
from podwatcher.errors import PodwatcherError, PolicyError, SnapshotError, SnapshotErrorKind
from podwatcher.models import GatePhase, LoopOutcome, RunResult
from podwatcher.observability.logging import LogContext, get_logger

if TYPE_CHECKING:
    from podwatcher.core.dispatcher import ActionDispatcher
    from podwatcher.models import Action, PodIdentity, PodSnapshot, Policy
    from podwatcher.observability.metrics import MetricsCollector


log = get_logger(__name__)


class SnapshotSource(Protocol):
    """Provides the current state of the governed pod.

    Raises ``SnapshotError`` classified as transient, not found or forbidden.
    """

    async def fetch(self, pod: PodIdentity) -> PodSnapshot: ...


@dataclass(frozen=True)
class ControllerConfig:
    """Immutable run configuration, resolved once at startup."""

    pod: PodIdentity
    action: Action
    policy: Policy | None = None
    critical_annotation: str = CRITICAL_CONTAINERS_ANNOTATION
    condition_annotation: str = CONDITION_ANNOTATION
    grace_window: float = 5.0
    poll_interval: float = 1.0
    fetch_timeout: float = 10.0
    fetch_attempts: int = 10
    backoff: float = 1.0
    max_backoff: float = 30.0


class ControlLoop:
    """Drive observation, decision and the single terminal action.

    Args:
        config: Run configuration.
        source: Where container states come from.
        dispatcher: Executes the terminal action.
        gate: Debounce gate (built from ``config`` when omitted).
        clock: Monotonic time source in seconds, read once per tick.
        stop_event: Set to cancel the run (e.g. from a signal handler).
        metrics: Optional metrics collector.
    """

    def __init__(
        self,
        config: ControllerConfig,
        source: SnapshotSource,
        dispatcher: ActionDispatcher,
        *,
        gate: DebounceGate | None = None,
        clock: Callable[[], float] = time.monotonic,
        stop_event: asyncio.Event | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.config = config
        self._source = source
        self._dispatcher = dispatcher
        self.gate = gate or DebounceGate(config.grace_window, sample_interval=config.poll_interval)
        self._clock = clock
        self.stop_event = stop_event or asyncio.Event()
        self._metrics = metrics
        self.policy: Policy | None = config.policy
        self.ticks = 0

    def stop(self) -> None:
        """Request cancellation; has no effect once the action was dispatched."""
        self.stop_event.set()

    async def run(self) -> RunResult:
        """Run until the action is dispatched, the pod is gone, or cancelled."""
        with LogContext(pod=str(self.config.pod), action=self.config.action.describe()):
            log.info("controller_started", grace_window=self.config.grace_window)
            result = await self._run()
            log.info(
                "controller_finished",
                outcome=result.outcome.value,
                ticks=result.ticks,
                exit_code=result.exit_code,
            )
            return result

    async def _run(self) -> RunResult:
        while True:
            if self.stop_event.is_set():
                return self._cancelled()

            try:
                snapshot = await self._fetch()
            except SnapshotError as e:
                if e.kind is SnapshotErrorKind.NOT_FOUND:
                    log.info("pod_gone", error=e.message)
                    return RunResult(LoopOutcome.POD_GONE, self.ticks)
                log.error("snapshot_failed", error=e.to_dict())
                return RunResult(LoopOutcome.FAILED, self.ticks, error=e)
            except Exception as e:
                error = PodwatcherError(
                    code="snapshot_unexpected_error",
                    message=str(e) or "Unknown snapshot error",
                    details={"exception_type": type(e).__name__},
                )
                log.exception("snapshot_unexpected_error", error=error.to_dict())
                return RunResult(LoopOutcome.FAILED, self.ticks, error=error)

            if snapshot is None or self.stop_event.is_set():
                return self._cancelled()

            if self.policy is None:
                try:
                    self.policy = resolve_policy(
                        snapshot.annotations,
                        critical_key=self.config.critical_annotation,
                        condition_key=self.config.condition_annotation,
                    )
                except PolicyError as e:
                    log.error("invalid_policy", error=e.to_dict())
                    return RunResult(LoopOutcome.FAILED, self.ticks, error=e)
                log.info(
                    "policy_resolved",
                    critical_containers=list(self.policy.critical_containers),
                    condition=self.policy.mode.value,
                )

            phase = self._tick(snapshot)

            if phase is GatePhase.CONFIRMED and not self._dispatcher.fired:
                outcome = await self._dispatcher.dispatch(self.config.action, self.config.pod, snapshot)
                if outcome.success:
                    return RunResult(LoopOutcome.DISPATCHED, self.ticks, dispatch=outcome)
                return RunResult(LoopOutcome.FAILED, self.ticks, dispatch=outcome, error=outcome.error)

            if await self._wait(self.config.poll_interval):
                return self._cancelled()

    def _tick(self, snapshot: PodSnapshot) -> GatePhase:
        assert self.policy is not None
        self.ticks += 1
        result = evaluate(self.policy.critical_containers, self.policy.mode, snapshot.containers)

        if result.missing_containers:
            log.warning("critical_containers_not_found", containers=list(result.missing_containers))

        previous = self.gate.phase
        phase = self.gate.observe(result.satisfied, self._clock())

        if self._metrics is not None:
            self._metrics.record_tick(len(result.contributing_containers))
            self._metrics.record_gate_phase(phase)

        if phase is not previous:
            log.info(
                "gate_transition",
                previous=previous.value,
                phase=phase.value,
                tick=self.ticks,
                stopped=sorted(result.contributing_containers),
            )
        else:
            log.debug("tick", tick=self.ticks, phase=phase.value, satisfied=result.satisfied)
        return phase

    async def _fetch(self) -> PodSnapshot | None:
        """Fetch a snapshot, retrying transient failures.

        Returns None when cancelled while waiting to retry.
        """
        failures = 0
        while True:
            try:
                return await asyncio.wait_for(
                    self._source.fetch(self.config.pod),
                    timeout=self.config.fetch_timeout,
                )
            except TimeoutError:
                error = SnapshotError(
                    SnapshotErrorKind.TRANSIENT,
                    f"status fetch timed out after {self.config.fetch_timeout}s",
                    code="snapshot_timeout",
                )
            except SnapshotError as e:
                error = e

            if self._metrics is not None:
                self._metrics.record_fetch_error(error.kind.value)
            if error.kind is not SnapshotErrorKind.TRANSIENT:
                raise error

            failures += 1
            if failures >= self.config.fetch_attempts:
                raise SnapshotError(
                    SnapshotErrorKind.TRANSIENT,
                    f"status fetch failed {failures} times in a row",
                    code="snapshot_attempts_exhausted",
                    details={"last_error": error.to_dict()},
                )

            wait = min(self.config.backoff * 2 ** (failures - 1), self.config.max_backoff)
            log.warning("snapshot_failed_retrying", error=error.message, failures=failures, wait_seconds=wait)
            if await self._wait(wait):
                return None

    async def _wait(self, seconds: float) -> bool:
        """Sleep for ``seconds`` unless cancelled first; True when cancelled."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    def _cancelled(self) -> RunResult:
        log.info("controller_cancelled", phase=self.gate.phase.value)
        return RunResult(LoopOutcome.CANCELLED, self.ticks)


__all__ = ["ControlLoop", "ControllerConfig", "SnapshotSource"]
