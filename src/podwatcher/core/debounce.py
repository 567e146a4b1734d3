"""Debounce gate for the stop condition.

Containers restarting (CrashLoopBackOff) or late status propagation can make a
critical container look terminated for a single poll. The gate only confirms
the stop condition once it has held continuously for the grace window:

    IDLE --satisfied--> PENDING --held >= grace--> CONFIRMED
      ^                    |
      +---not satisfied----+

CONFIRMED is sticky. Going back to IDLE drops all accumulated progress.
"""

from __future__ import annotations

from podwatcher.models import DebounceState, GatePhase


class DebounceGate:
    """Promote a satisfied signal to confirmed after a grace window.

    Args:
        grace_window: Seconds the signal must hold continuously.
        sample_interval: Seconds each observation stands for. With a polling
            loop this is the poll interval, so a window of N intervals is
            confirmed on the Nth consecutive satisfied observation.
    """

    def __init__(self, grace_window: float, *, sample_interval: float = 0.0) -> None:
        if grace_window < 0:
            msg = "grace_window must not be negative"
            raise ValueError(msg)
        if sample_interval < 0:
            msg = "sample_interval must not be negative"
            raise ValueError(msg)
        self.grace_window = grace_window
        self.sample_interval = sample_interval
        self.state = DebounceState()

    @property
    def phase(self) -> GatePhase:
        if self.state.confirmed:
            return GatePhase.CONFIRMED
        if self.state.first_satisfied_at is not None:
            return GatePhase.PENDING
        return GatePhase.IDLE

    @property
    def confirmed(self) -> bool:
        return self.state.confirmed

    def held_for(self, now: float) -> float:
        """Seconds the signal has held as of ``now`` (0 when idle)."""
        if self.state.first_satisfied_at is None:
            return 0.0
        return now - self.state.first_satisfied_at + self.sample_interval

    def observe(self, satisfied: bool, now: float) -> GatePhase:
        """Feed one observation and return the resulting phase."""
        if self.state.confirmed:
            return GatePhase.CONFIRMED

        if not satisfied:
            self.state.first_satisfied_at = None
            return GatePhase.IDLE

        if self.state.first_satisfied_at is None:
            self.state.first_satisfied_at = now

        if self.held_for(now) >= self.grace_window:
            self.state.confirmed = True
            return GatePhase.CONFIRMED

        return GatePhase.PENDING


__all__ = ["DebounceGate"]
