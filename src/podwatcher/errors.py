"""Structured errors raised by the podwatcher controller."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class PodwatcherError(RuntimeError):
    """Base class for controller failures with a log-friendly payload."""

    def __init__(
        self,
        *,
        code: str,
        message: str,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
        timestamp: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.details = details or {}
        self.timestamp = timestamp or datetime.now(UTC).isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for log surfaces."""
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        """Serialize the error as a compact JSON string."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=True)


class PolicyError(PodwatcherError):
    """The critical-container policy cannot be resolved."""

    def __init__(self, message: str, *, code: str = "missing_critical_containers", **kwargs: Any) -> None:
        super().__init__(code=code, message=message, retryable=False, **kwargs)


class ConfigurationError(PodwatcherError):
    """The controller cannot be configured (e.g. unknown pod identity)."""

    def __init__(self, message: str, *, code: str = "invalid_configuration", **kwargs: Any) -> None:
        super().__init__(code=code, message=message, retryable=False, **kwargs)


class SnapshotErrorKind(str, Enum):
    """Failure classes of a status fetch."""

    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


class SnapshotError(PodwatcherError):
    """Fetching the pod's container states failed."""

    def __init__(
        self,
        kind: SnapshotErrorKind,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=code or f"snapshot_{kind.value}",
            message=message,
            retryable=kind is SnapshotErrorKind.TRANSIENT,
            details=details,
        )
        self.kind = kind

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        return data


class ActionErrorKind(str, Enum):
    """Failure classes of a terminal action attempt."""

    TRANSIENT = "transient"
    FATAL = "fatal"


class ActionError(PodwatcherError):
    """Executing the terminal action failed."""

    def __init__(
        self,
        kind: ActionErrorKind,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=code or f"action_{kind.value}",
            message=message,
            retryable=kind is ActionErrorKind.TRANSIENT,
            details=details,
        )
        self.kind = kind

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        return data


def ensure_action_error(
    error: Exception,
    *,
    code: str = "action_unexpected_error",
    details: dict[str, Any] | None = None,
) -> ActionError:
    """Normalize an unexpected handler exception into a fatal action error."""
    if isinstance(error, ActionError):
        return error

    merged_details = dict(details or {})
    merged_details.setdefault("exception_type", type(error).__name__)

    return ActionError(
        ActionErrorKind.FATAL,
        str(error) or "Unknown action error",
        code=code,
        details=merged_details,
    )


__all__ = [
    "ActionError",
    "ActionErrorKind",
    "ConfigurationError",
    "PodwatcherError",
    "PolicyError",
    "SnapshotError",
    "SnapshotErrorKind",
    "ensure_action_error",
]
