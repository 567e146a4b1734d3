"""Decision core: policy, evaluation, debouncing, dispatch and the loop."""

from podwatcher.core.debounce import DebounceGate
from podwatcher.core.dispatcher import ActionDispatcher, ActionHandler
from podwatcher.core.evaluator import evaluate
from podwatcher.core.loop import ControlLoop, ControllerConfig, SnapshotSource
from podwatcher.core.policy import resolve_policy


__all__ = [
    "ActionDispatcher",
    "ActionHandler",
    "ControlLoop",
    "ControllerConfig",
    "DebounceGate",
    "SnapshotSource",
    "evaluate",
    "resolve_policy",
]
