"""
Centralized configuration for karo.

Uses Pydantic BaseSettings for environment variable integration
and validation.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (KARO_*)
3. .env file
4. Default values

Example:
    from karo.config import get_config

    config = get_config()
    print(config.webhook_port)  # From KARO_WEBHOOK_PORT or default

    # Override at runtime
    config = get_config(storage_type="file", rules_path="./rules")
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KaroConfig(BaseSettings):
    """
    Central configuration for karo.

    All settings can be overridden via environment variables
    prefixed with KARO_.

    Example:
        export KARO_WEBHOOK_PORT=9090
        export KARO_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="KARO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    service_name: str = Field(
        default="karo",
        description="Service name for logs and telemetry",
    )

    # Webhook listener
    webhook_host: str = Field(
        default="0.0.0.0",
        description="Address the Alertmanager webhook listener binds to",
    )
    webhook_port: int = Field(
        default=9090,
        ge=1,
        le=65535,
        description="Port for the Alertmanager webhook listener",
    )

    # Backend
    storage_type: Literal["auto", "kubernetes", "file", "memory"] = Field(
        default="auto",
        description="Backend type (auto-detects if not set)",
    )
    namespace: Optional[str] = Field(
        default=None,
        description="Only consider AlertReactions in this namespace (all if unset)",
    )
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (auto-detected if not set)",
    )
    rules_path: str = Field(
        default="./rules",
        description="Manifest file or directory for the file backend",
    )
    output_dir: Optional[str] = Field(
        default=None,
        description="Where the file backend writes job manifests",
    )

    # Kubernetes API timeouts
    k8s_connect_timeout_s: float = Field(default=3.0, gt=0)
    k8s_read_timeout_s: float = Field(default=5.0, gt=0)

    # Job synthesis
    job_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="ttlSecondsAfterFinished for created jobs",
    )
    max_workers: int = Field(
        default=8,
        ge=1,
        description="Parallel job syntheses per alert",
    )
    synthesis_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on one action's synthesis, lookups included",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format (json for Loki, text for console)",
    )

    # Metrics
    metrics_enabled: bool = Field(
        default=False,
        description="Export OTel metrics to the console exporter",
    )

    @field_validator("rules_path")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ and environment variables in paths."""
        return os.path.expanduser(os.path.expandvars(v))

    @field_validator("log_level", mode="before")
    @classmethod
    def lower_level(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    def backend_kwargs(self, storage_type: str) -> dict:
        """Keyword arguments for :func:`karo.storage.get_backend` for a resolved type."""
        if storage_type == "file":
            return {"rules_path": self.rules_path, "output_dir": self.output_dir}
        if storage_type == "memory":
            return {}
        return {
            "kubeconfig": self.kubeconfig,
            "connect_timeout_s": self.k8s_connect_timeout_s,
            "read_timeout_s": self.k8s_read_timeout_s,
        }


# Global singleton
_config: Optional[KaroConfig] = None


def get_config(**overrides) -> KaroConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.
    """
    global _config

    if overrides or _config is None:
        _config = KaroConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
