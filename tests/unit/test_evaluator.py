"""Unit tests for the condition evaluator."""

from __future__ import annotations

import itertools

import pytest

from podwatcher.core.evaluator import evaluate
from podwatcher.models import ConditionMode, ContainerObservation, ContainerPhase


def obs(name: str, phase: ContainerPhase) -> ContainerObservation:
    return ContainerObservation(name=name, phase=phase)


RUNNING = ContainerPhase.RUNNING
WAITING = ContainerPhase.WAITING
TERMINATED = ContainerPhase.TERMINATED


class TestAllMode:
    """Tests for ConditionMode.ALL."""

    def test_all_terminated(self) -> None:
        result = evaluate(("a", "b"), ConditionMode.ALL, [obs("a", TERMINATED), obs("b", TERMINATED)])

        assert result.satisfied is True
        assert result.contributing_containers == {"a", "b"}

    def test_one_still_running(self) -> None:
        result = evaluate(("a", "b"), ConditionMode.ALL, [obs("a", TERMINATED), obs("b", RUNNING)])

        assert result.satisfied is False
        assert result.contributing_containers == {"a"}

    def test_missing_container_blocks_all(self) -> None:
        result = evaluate(("a", "b"), ConditionMode.ALL, [obs("a", TERMINATED)])

        assert result.satisfied is False
        assert result.missing_containers == ("b",)


class TestAnyMode:
    """Tests for ConditionMode.ANY."""

    def test_one_terminated_is_enough(self) -> None:
        result = evaluate(("a", "b"), ConditionMode.ANY, [obs("a", TERMINATED), obs("b", RUNNING)])

        assert result.satisfied is True
        assert result.contributing_containers == {"a"}

    def test_none_terminated(self) -> None:
        result = evaluate(("a", "b"), ConditionMode.ANY, [obs("a", WAITING), obs("b", RUNNING)])

        assert result.satisfied is False
        assert result.contributing_containers == frozenset()

    def test_non_critical_containers_are_ignored(self) -> None:
        result = evaluate(("a",), ConditionMode.ANY, [obs("a", RUNNING), obs("istio-proxy", TERMINATED)])

        assert result.satisfied is False


class TestAbsence:
    """A critical container missing from the observations never counts as stopped."""

    @pytest.mark.parametrize("mode", list(ConditionMode))
    def test_empty_observations(self, mode: ConditionMode) -> None:
        result = evaluate(("worker",), mode, [])

        assert result.satisfied is False
        assert result.missing_containers == ("worker",)

    @pytest.mark.parametrize("mode", list(ConditionMode))
    def test_absent_name_is_not_stopped(self, mode: ConditionMode) -> None:
        result = evaluate(("worker", "ghost"), mode, [obs("worker", RUNNING)])

        assert "ghost" not in result.contributing_containers
        assert result.missing_containers == ("ghost",)


def test_last_observation_for_a_name_wins() -> None:
    result = evaluate(("a",), ConditionMode.ANY, [obs("a", TERMINATED), obs("a", RUNNING)])

    assert result.satisfied is False


def test_boolean_matches_definition_for_every_phase_combination() -> None:
    """Exhaustively check both modes over two critical containers plus absence."""
    critical = ("a", "b")
    choices = [None, RUNNING, WAITING, TERMINATED]

    for phase_a, phase_b in itertools.product(choices, repeat=2):
        observations = [obs(n, p) for n, p in (("a", phase_a), ("b", phase_b)) if p is not None]
        stopped = {o.name for o in observations if o.phase is TERMINATED}

        all_result = evaluate(critical, ConditionMode.ALL, observations)
        any_result = evaluate(critical, ConditionMode.ANY, observations)

        assert all_result.satisfied == (stopped == set(critical))
        assert any_result.satisfied == bool(stopped)
        assert all_result.contributing_containers == stopped


def test_evaluate_is_pure() -> None:
    observations = [obs("a", TERMINATED)]
    first = evaluate(("a",), ConditionMode.ALL, observations)
    second = evaluate(("a",), ConditionMode.ALL, observations)

    assert first == second
