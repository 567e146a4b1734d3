"""Unit tests for the action dispatcher."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from podwatcher.core.dispatcher import ActionDispatcher
from podwatcher.errors import ActionError, ActionErrorKind
from podwatcher.models import DeletePod, PodIdentity, StopIstio
from podwatcher.observability.metrics import MetricsCollector


def transient(message: str = "blip") -> ActionError:
    return ActionError(ActionErrorKind.TRANSIENT, message)


def fatal(message: str = "denied") -> ActionError:
    return ActionError(ActionErrorKind.FATAL, message)


class TestDispatchRouting:
    """Each action kind reaches its own handler."""

    @pytest.mark.asyncio
    async def test_delete_pod_uses_delete_handler(self, pod: PodIdentity, recording_handler: Any) -> None:
        deleter = recording_handler(detail="pod deleted")
        stopper = recording_handler()
        dispatcher = ActionDispatcher(delete_pod=deleter, stop_istio=stopper)

        outcome = await dispatcher.dispatch(DeletePod(), pod)

        assert outcome.success is True
        assert outcome.detail == "pod deleted"
        assert outcome.attempts == 1
        assert deleter.calls == [(DeletePod(), pod)]
        assert stopper.calls == []

    @pytest.mark.asyncio
    async def test_stop_istio_uses_istio_handler(self, pod: PodIdentity, recording_handler: Any) -> None:
        deleter = recording_handler()
        stopper = recording_handler()
        dispatcher = ActionDispatcher(delete_pod=deleter, stop_istio=stopper)

        outcome = await dispatcher.dispatch(StopIstio("istio-proxy"), pod)

        assert outcome.success is True
        assert stopper.calls == [(StopIstio("istio-proxy"), pod)]
        assert deleter.calls == []

    @pytest.mark.asyncio
    async def test_missing_handler_is_fatal(self, pod: PodIdentity, recording_handler: Any) -> None:
        dispatcher = ActionDispatcher(delete_pod=recording_handler())

        outcome = await dispatcher.dispatch(StopIstio(), pod)

        assert outcome.success is False
        assert outcome.error is not None
        assert outcome.error.code == "action_handler_missing"
        assert dispatcher.fired is True


class TestAtMostOnce:
    """The latch guarantees a single dispatch."""

    @pytest.mark.asyncio
    async def test_second_dispatch_is_rejected(self, pod: PodIdentity, recording_handler: Any) -> None:
        deleter = recording_handler()
        dispatcher = ActionDispatcher(delete_pod=deleter)

        await dispatcher.dispatch(DeletePod(), pod)
        for _ in range(3):
            with pytest.raises(ActionError) as exc_info:
                await dispatcher.dispatch(DeletePod(), pod)
            assert exc_info.value.code == "already_dispatched"

        assert len(deleter.calls) == 1

    @pytest.mark.asyncio
    async def test_latch_set_even_after_fatal(self, pod: PodIdentity, recording_handler: Any) -> None:
        deleter = recording_handler(failures=[fatal()])
        dispatcher = ActionDispatcher(delete_pod=deleter)

        outcome = await dispatcher.dispatch(DeletePod(), pod)

        assert outcome.success is False
        assert dispatcher.fired is True
        with pytest.raises(ActionError):
            await dispatcher.dispatch(DeletePod(), pod)
        assert len(deleter.calls) == 1


class TestRetries:
    """Bounded retries of transient failures."""

    @pytest.mark.asyncio
    async def test_transient_then_success(self, pod: PodIdentity, recording_handler: Any, no_sleep: Any) -> None:
        deleter = recording_handler(failures=[transient(), transient()])
        dispatcher = ActionDispatcher(delete_pod=deleter, attempts=5, backoff=0.5, sleep=no_sleep)

        outcome = await dispatcher.dispatch(DeletePod(), pod)

        assert outcome.success is True
        assert outcome.attempts == 3
        assert no_sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhausted_transient_becomes_fatal(
        self, pod: PodIdentity, recording_handler: Any, no_sleep: Any
    ) -> None:
        stopper = recording_handler(failures=[transient("HTTP 503")] * 3)
        dispatcher = ActionDispatcher(stop_istio=stopper, attempts=3, backoff=1.0, sleep=no_sleep)

        outcome = await dispatcher.dispatch(StopIstio(), pod)

        assert outcome.success is False
        assert outcome.attempts == 3
        assert outcome.error is not None
        assert outcome.error.kind is ActionErrorKind.FATAL
        assert outcome.error.code == "attempts_exhausted"
        assert outcome.error.details["last_error"]["message"] == "HTTP 503"
        assert len(stopper.calls) == 3
        assert no_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_fatal_stops_immediately(self, pod: PodIdentity, recording_handler: Any, no_sleep: Any) -> None:
        deleter = recording_handler(failures=[transient(), fatal("forbidden")])
        dispatcher = ActionDispatcher(delete_pod=deleter, attempts=5, sleep=no_sleep)

        outcome = await dispatcher.dispatch(DeletePod(), pod)

        assert outcome.success is False
        assert outcome.attempts == 2
        assert outcome.error is not None
        assert outcome.error.message == "forbidden"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_fatal(
        self, pod: PodIdentity, recording_handler: Any, no_sleep: Any
    ) -> None:
        deleter = recording_handler(failures=[KeyError("boom")])
        dispatcher = ActionDispatcher(delete_pod=deleter, attempts=3, sleep=no_sleep)

        outcome = await dispatcher.dispatch(DeletePod(), pod)

        assert outcome.success is False
        assert outcome.attempts == 1
        assert outcome.error is not None
        assert outcome.error.details["exception_type"] == "KeyError"

    @pytest.mark.asyncio
    async def test_attempt_timeout_is_transient(self, pod: PodIdentity, no_sleep: Any) -> None:
        class SlowHandler:
            def __init__(self) -> None:
                self.calls = 0

            async def execute(self, action: Any, pod: PodIdentity, snapshot: Any) -> str:
                self.calls += 1
                if self.calls == 1:
                    await asyncio.sleep(10)
                return "ok"

        handler = SlowHandler()
        dispatcher = ActionDispatcher(delete_pod=handler, attempts=2, timeout=0.01, sleep=no_sleep)

        outcome = await dispatcher.dispatch(DeletePod(), pod)

        assert outcome.success is True
        assert outcome.attempts == 2

    def test_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="attempts"):
            ActionDispatcher(attempts=0)


@pytest.mark.asyncio
async def test_dispatch_records_metrics(pod: PodIdentity, recording_handler: Any) -> None:
    metrics = MetricsCollector(namespace="test_dispatch")
    dispatcher = ActionDispatcher(delete_pod=recording_handler(), metrics=metrics)

    await dispatcher.dispatch(DeletePod(), pod)

    value = metrics.registry.get_sample_value(
        "test_dispatch_dispatch_total",
        {"action": "delete-pod", "outcome": "success"},
    )
    assert value == 1.0
