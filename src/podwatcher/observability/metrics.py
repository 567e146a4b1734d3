"""Prometheus metrics for podwatcher.

Exposes metrics describing the controller's progress towards its single
terminal action.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, start_http_server

from podwatcher.models import GatePhase


class MetricsCollector:
    """Prometheus metrics collector for podwatcher.

    Each collector owns its registry, so several collectors (tests, embedded
    loops) never clash on metric names.
    """

    def __init__(self, namespace: str = "podwatcher", registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics.

        Args:
            namespace: Prometheus namespace prefix for all metrics.
            registry: Registry to register with (a fresh one by default).
        """
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()

        self.info = Info(
            f"{namespace}_build",
            "podwatcher build information",
            registry=self.registry,
        )

        self.ticks_total = Counter(
            f"{namespace}_ticks_total",
            "Total control loop ticks",
            registry=self.registry,
        )

        self.fetch_errors_total = Counter(
            f"{namespace}_fetch_errors_total",
            "Failed pod status fetches",
            ["kind"],
            registry=self.registry,
        )

        self.critical_stopped = Gauge(
            f"{namespace}_critical_containers_stopped",
            "Number of critical containers observed as terminated",
            registry=self.registry,
        )

        self.gate_phase = Gauge(
            f"{namespace}_gate_phase",
            "Current debounce gate phase (1 for the active phase)",
            ["phase"],
            registry=self.registry,
        )

        self.dispatch_total = Counter(
            f"{namespace}_dispatch_total",
            "Terminal action dispatches",
            ["action", "outcome"],
            registry=self.registry,
        )

        self.dispatch_duration = Histogram(
            f"{namespace}_dispatch_duration_seconds",
            "Time spent executing the terminal action, retries included",
            ["action"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=self.registry,
        )

    def set_build_info(self, version: str) -> None:
        """Set build information."""
        self.info.info({"version": version})

    def record_tick(self, stopped_count: int) -> None:
        self.ticks_total.inc()
        self.critical_stopped.set(stopped_count)

    def record_fetch_error(self, kind: str) -> None:
        self.fetch_errors_total.labels(kind=kind).inc()

    def record_gate_phase(self, phase: GatePhase) -> None:
        for candidate in GatePhase:
            self.gate_phase.labels(phase=candidate.value).set(1 if candidate is phase else 0)

    def record_dispatch(self, action: str, outcome: str, duration_seconds: float) -> None:
        """Record the terminal action dispatch.

        Args:
            action: Action name (e.g. "delete-pod").
            outcome: "success" or "failure".
            duration_seconds: Total time spent dispatching.
        """
        self.dispatch_total.labels(action=action, outcome=outcome).inc()
        self.dispatch_duration.labels(action=action).observe(duration_seconds)

    def serve(self, port: int) -> None:
        """Start the metrics HTTP endpoint in a background thread."""
        start_http_server(port, registry=self.registry)
