"""Evaluate whether the critical containers have stopped."""

from __future__ import annotations

from typing import TYPE_CHECKING

from podwatcher.models import ConditionMode, EvaluationResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from podwatcher.models import ContainerObservation


def evaluate(
    critical: Iterable[str],
    mode: ConditionMode,
    observations: Iterable[ContainerObservation],
) -> EvaluationResult:
    """Combine container observations with the any/all policy.

    A critical container counts as stopped only when it is reported and its
    phase is Terminated. A container missing from ``observations`` is never
    stopped, under either mode.
    """
    latest = {observation.name: observation for observation in observations}
    critical = tuple(critical)

    stopped = frozenset(name for name in critical if name in latest and latest[name].stopped)
    missing = tuple(name for name in critical if name not in latest)

    if mode is ConditionMode.ALL:
        satisfied = bool(critical) and len(stopped) == len(set(critical))
    else:
        satisfied = bool(stopped)

    return EvaluationResult(
        satisfied=satisfied,
        contributing_containers=stopped,
        missing_containers=missing,
    )


__all__ = ["evaluate"]
