"""podwatcher settings configuration.

Uses Pydantic Settings for type-safe configuration management
with support for environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Self

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from podwatcher.version import __version__


SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


class PodSettings(BaseSettings):
    """Identity of the governed pod (normally injected by the downward API)."""

    model_config = SettingsConfigDict(
        env_prefix="PODWATCHER_POD_",
        extra="ignore",
    )

    name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PODWATCHER_POD_NAME", "POD_NAME", "HOSTNAME"),
        description="Name of the pod this controller governs",
    )
    namespace: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PODWATCHER_POD_NAMESPACE", "POD_NAMESPACE"),
        description="Namespace of the governed pod",
    )

    def resolved_namespace(self) -> str:
        """Namespace from settings, the service account mount, or ``default``."""
        if self.namespace:
            return self.namespace
        try:
            value = SERVICE_ACCOUNT_NAMESPACE_FILE.read_text(encoding="utf-8").strip()
        except OSError:
            value = ""
        return value or "default"


class WatcherSettings(BaseSettings):
    """Observation and debounce configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODWATCHER_WATCHER_",
        extra="ignore",
    )

    critical_annotation: str = Field(
        default="podwatcher/critical-containers",
        description="Pod annotation listing critical containers (comma separated)",
    )
    condition_annotation: str = Field(
        default="podwatcher/condition",
        description="Pod annotation selecting the any/all condition",
    )
    grace_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="How long the stop condition must hold before acting",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Delay between two status fetches",
    )
    fetch_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout of a single status fetch",
    )
    fetch_attempts: int = Field(
        default=10,
        ge=1,
        description="Consecutive failed fetches tolerated before giving up",
    )
    backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial backoff after a failed fetch (doubles per failure)",
    )
    max_backoff_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Upper bound for the fetch backoff",
    )
    container_deadline_ms: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("PODWATCHER_WATCHER_CONTAINER_DEADLINE_MS", "CONTAINER_DEADLINE"),
        description="Grace window in milliseconds, used when grace_seconds is not set",
    )

    @model_validator(mode="after")
    def apply_container_deadline(self) -> Self:
        """Derive the grace window from the millisecond deadline variable."""
        if self.container_deadline_ms is not None and "grace_seconds" not in self.model_fields_set:
            self.grace_seconds = self.container_deadline_ms / 1000
        return self


class ActionSettings(BaseSettings):
    """Terminal action configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODWATCHER_ACTION_",
        extra="ignore",
    )

    attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts before a transient action failure becomes fatal",
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout of a single action attempt",
    )
    backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial backoff between action attempts (doubles per attempt)",
    )
    delete_owner_job: bool = Field(
        default=False,
        description="Also delete the Job controlling the pod before deleting the pod",
    )


class IstioSettings(BaseSettings):
    """Istio sidecar shutdown endpoint."""

    model_config = SettingsConfigDict(
        env_prefix="PODWATCHER_ISTIO_",
        extra="ignore",
    )

    container_name: str = Field(
        default="istio-proxy",
        validation_alias=AliasChoices("PODWATCHER_ISTIO_CONTAINER_NAME", "ISTIO_CONTAINER_NAME"),
        description="Name of the Istio container inside the pod",
    )
    host: str = Field(default="127.0.0.1", description="Host of the Istio admin endpoint")
    port: int = Field(default=15000, ge=1, le=65535, description="Istio admin port")
    path: str = Field(default="/quitquitquit", description="Istio shutdown path")
    use_pod_ip: bool = Field(
        default=False,
        description="Signal the pod IP reported in the pod status instead of host",
    )

    @field_validator("path", mode="after")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Ensure the shutdown path is absolute."""
        return v if v.startswith("/") else f"/{v}"


class KubernetesSettings(BaseSettings):
    """Kubernetes configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODWATCHER_K8S_",
        extra="ignore",
    )

    in_cluster: bool = Field(
        default=True,
        description="Whether running inside a Kubernetes cluster",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig file (if not in-cluster)",
    )
    context: str | None = Field(
        default=None,
        description="Kubernetes context to use",
    )


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODWATCHER_OBSERVABILITY_",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )

    metrics_enabled: bool = Field(
        default=False,
        description="Expose Prometheus metrics over HTTP",
    )
    metrics_port: int = Field(
        default=9090,
        ge=1,
        le=65535,
        description="Port for metrics endpoint",
    )
    metrics_namespace: str = Field(
        default="podwatcher",
        description="Prefix of all metric names",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        """Accept lower-case level names from the environment."""
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    """Main podwatcher configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PODWATCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    version: str = Field(default=__version__)

    pod: PodSettings = Field(default_factory=PodSettings)
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    action: ActionSettings = Field(default_factory=ActionSettings)
    istio: IstioSettings = Field(default_factory=IstioSettings)
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are cached after first load; the CLI copies them with its
    overrides applied instead of mutating the cached instance.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()


def reload_settings() -> Settings:
    """Force reload settings (clears cache).

    Returns:
        Settings: Fresh settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
