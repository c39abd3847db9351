"""Per-orchestrator configuration model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from devicemesh.concurrency.retry import RetryPolicy
from devicemesh.concurrency.timeout import TimeoutPolicy
from devicemesh.config.environment import Environment


class MeshConfig(BaseModel):
    """
    Settings for one DeviceOrchestrator.

    Defaults match ``DEFAULT_ENV``; use ``MeshConfig.from_environment()`` to
    pick up environment variables and settings.yaml, or construct directly
    to override individual values:

        config = MeshConfig(max_retries=5, timeout=10.0)
        faster = config.model_copy(update={"retry_delay": 0.2})
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0)
    timeout: float = Field(default=30.0, gt=0.0)
    max_workers: int = Field(default=8, gt=0)
    pid_cache_ttl: float = Field(default=3.0, gt=0.0)
    version_cache_ttl: float = Field(default=3600.0, gt=0.0)

    @classmethod
    def from_environment(cls) -> "MeshConfig":
        return cls(
            max_retries=Environment.get_max_retries(),
            retry_delay=Environment.get_retry_delay(),
            timeout=Environment.get_timeout(),
            max_workers=Environment.get_max_workers(),
            pid_cache_ttl=Environment.get_pid_cache_ttl(),
            version_cache_ttl=Environment.get_version_cache_ttl(),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, initial_delay=self.retry_delay)

    def timeout_policy(self) -> TimeoutPolicy:
        return TimeoutPolicy(default_timeout=self.timeout)


__all__ = ["MeshConfig"]
