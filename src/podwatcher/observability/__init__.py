"""podwatcher observability package.

Logging and metrics for the controller.
"""

from podwatcher.observability.logging import configure_logging, get_logger
from podwatcher.observability.metrics import MetricsCollector

__all__ = ["MetricsCollector", "configure_logging", "get_logger"]
