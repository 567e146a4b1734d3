"""Resolve the critical-container policy from pod annotations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from podwatcher.errors import PolicyError
from podwatcher.models import ConditionMode, Policy
from podwatcher.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping


log = get_logger(__name__)

CRITICAL_CONTAINERS_ANNOTATION = "podwatcher/critical-containers"
CONDITION_ANNOTATION = "podwatcher/condition"


def parse_container_list(raw: str | None) -> tuple[str, ...]:
    """Split a comma separated container list.

    Tokens are trimmed, empty tokens dropped and duplicates removed while
    keeping first-seen order: ``" a, ,a,b "`` gives ``("a", "b")``.
    """
    if not raw:
        return ()
    names: dict[str, None] = {}
    for token in raw.split(","):
        name = token.strip()
        if name:
            names.setdefault(name, None)
    return tuple(names)


def parse_condition(raw: str | None) -> ConditionMode:
    """Map a condition value to a mode; unknown or missing values mean ANY."""
    value = (raw or "").strip().lower()
    if value == ConditionMode.ALL.value:
        return ConditionMode.ALL
    if value and value != ConditionMode.ANY.value:
        log.warning("unknown_condition_assuming_any", condition=raw)
    return ConditionMode.ANY


def resolve_policy(
    annotations: Mapping[str, str] | None,
    *,
    critical_key: str = CRITICAL_CONTAINERS_ANNOTATION,
    condition_key: str = CONDITION_ANNOTATION,
) -> Policy:
    """Build the policy from the governed pod's annotations.

    Args:
        annotations: The pod's annotation map (may be None).
        critical_key: Annotation holding the critical container names.
        condition_key: Annotation holding the any/all condition.

    Returns:
        Policy: The resolved critical containers and condition mode.

    Raises:
        PolicyError: If the critical container list is absent or empty.
    """
    annotations = annotations or {}
    critical = parse_container_list(annotations.get(critical_key))
    if not critical:
        msg = f"annotation {critical_key!r} is missing or lists no containers"
        raise PolicyError(msg, details={"annotation": critical_key})

    return Policy(
        critical_containers=critical,
        mode=parse_condition(annotations.get(condition_key)),
    )


__all__ = [
    "CONDITION_ANNOTATION",
    "CRITICAL_CONTAINERS_ANNOTATION",
    "parse_condition",
    "parse_container_list",
    "resolve_policy",
]
