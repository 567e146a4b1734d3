"""Execute the terminal action exactly once.

The dispatcher owns the at-most-once latch. Handlers know how to perform one
action kind and classify their own failures as transient or fatal; retrying,
timeouts and the latch live here so no handler has to track them.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, TypeVar, assert_never

from podwatcher.errors import ActionError, ActionErrorKind, ensure_action_error
from podwatcher.models import DeletePod, DispatchOutcome, DispatchState, StopIstio
from podwatcher.observability.logging import get_logger

if TYPE_CHECKING:
    from podwatcher.models import Action, PodIdentity, PodSnapshot
    from podwatcher.observability.metrics import MetricsCollector


log = get_logger(__name__)

ActionT = TypeVar("ActionT", contravariant=True)

DEFAULT_ACTION_ATTEMPTS = 5
DEFAULT_ACTION_TIMEOUT_SECONDS = 10.0
DEFAULT_ACTION_BACKOFF_SECONDS = 1.0


class ActionHandler(Protocol[ActionT]):
    """Performs one kind of terminal action.

    ``execute`` returns a short human readable detail on success and raises
    ``ActionError`` on failure.
    """

    async def execute(self, action: ActionT, pod: PodIdentity, snapshot: PodSnapshot | None) -> str: ...


class ActionDispatcher:
    """Dispatch a terminal action with bounded retries, at most once.

    Args:
        delete_pod: Handler for ``DeletePod``.
        stop_istio: Handler for ``StopIstio``.
        attempts: Attempts before a transient failure becomes fatal.
        timeout: Timeout of a single attempt in seconds.
        backoff: Initial delay between attempts; doubles after each attempt.
        sleep: Coroutine used to wait between attempts.
        metrics: Optional metrics collector.
    """

    def __init__(
        self,
        *,
        delete_pod: ActionHandler[DeletePod] | None = None,
        stop_istio: ActionHandler[StopIstio] | None = None,
        attempts: int = DEFAULT_ACTION_ATTEMPTS,
        timeout: float = DEFAULT_ACTION_TIMEOUT_SECONDS,
        backoff: float = DEFAULT_ACTION_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if attempts < 1:
            msg = "attempts must be at least 1"
            raise ValueError(msg)
        self._delete_pod = delete_pod
        self._stop_istio = stop_istio
        self.attempts = attempts
        self.timeout = timeout
        self.backoff = backoff
        self._sleep = sleep
        self._metrics = metrics
        self.state = DispatchState()

    @property
    def fired(self) -> bool:
        return self.state.fired

    def _execute(self, action: Action, pod: PodIdentity, snapshot: PodSnapshot | None) -> Awaitable[str]:
        match action:
            case DeletePod():
                handler = self._delete_pod
            case StopIstio():
                handler = self._stop_istio
            case _:
                assert_never(action)

        if handler is None:
            raise ActionError(
                ActionErrorKind.FATAL,
                f"no handler configured for {action.describe()}",
                code="action_handler_missing",
            )
        return handler.execute(action, pod, snapshot)

    async def dispatch(
        self,
        action: Action,
        pod: PodIdentity,
        snapshot: PodSnapshot | None = None,
    ) -> DispatchOutcome:
        """Run ``action`` against ``pod``.

        Args:
            action: The terminal action to perform.
            pod: The governed pod.
            snapshot: Latest pod snapshot, for handlers that inspect it.

        Returns:
            DispatchOutcome: success flag, attempts used and the final error.

        Raises:
            ActionError: If the action was already dispatched by this instance.
        """
        if self.state.fired:
            raise ActionError(
                ActionErrorKind.FATAL,
                "terminal action already dispatched",
                code="already_dispatched",
                details={"action": action.describe()},
            )
        self.state.fired = True

        started = time.monotonic()
        outcome = await self._run_attempts(action, pod, snapshot)
        if self._metrics is not None:
            self._metrics.record_dispatch(
                action.describe(),
                "success" if outcome.success else "failure",
                time.monotonic() - started,
            )
        return outcome

    async def _run_attempts(
        self,
        action: Action,
        pod: PodIdentity,
        snapshot: PodSnapshot | None,
    ) -> DispatchOutcome:
        last_error: ActionError | None = None

        for attempt in range(1, self.attempts + 1):
            try:
                detail = await asyncio.wait_for(self._execute(action, pod, snapshot), timeout=self.timeout)
            except TimeoutError:
                last_error = ActionError(
                    ActionErrorKind.TRANSIENT,
                    f"attempt timed out after {self.timeout}s",
                    code="action_timeout",
                )
            except ActionError as e:
                last_error = e
            except Exception as e:
                last_error = ensure_action_error(e)
            else:
                log.info("action_dispatched", action=action.describe(), pod=str(pod), attempt=attempt, detail=detail)
                return DispatchOutcome(action=action, success=True, attempts=attempt, detail=detail)

            if last_error.kind is ActionErrorKind.FATAL:
                log.error("action_failed", action=action.describe(), pod=str(pod), error=last_error.to_dict())
                return DispatchOutcome(action=action, success=False, attempts=attempt, error=last_error)

            if attempt < self.attempts:
                wait = self.backoff * 2 ** (attempt - 1)
                log.warning(
                    "action_failed_retrying",
                    action=action.describe(),
                    error=last_error.message,
                    attempt=attempt,
                    wait_seconds=wait,
                )
                await self._sleep(wait)

        exhausted = ActionError(
            ActionErrorKind.FATAL,
            f"{action.describe()} failed after {self.attempts} attempts",
            code="attempts_exhausted",
            details={"last_error": last_error.to_dict() if last_error else None},
        )
        log.error("action_attempts_exhausted", action=action.describe(), pod=str(pod), error=exhausted.to_dict())
        return DispatchOutcome(action=action, success=False, attempts=self.attempts, error=exhausted)


__all__ = ["ActionDispatcher", "ActionHandler"]
