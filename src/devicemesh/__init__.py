"""
devicemesh: resilient orchestration of blocking per-device commands.

Retries with capped exponential backoff, deadline guards, TTL caches,
failure-isolated fan-out across devices, and scoped cleanup of temporary
files left on devices.
"""

from devicemesh.concurrency import (
    CacheEntry,
    DeviceResult,
    FanoutResult,
    RetryPolicy,
    TimeoutError,
    TimeoutPolicy,
    TTLCache,
    dispatch,
    dispatch_online,
    run_with_retry,
    run_with_timeout,
)
from devicemesh.config.mesh_config import MeshConfig
from devicemesh.device import CommandExecutor, DeviceDescriptor, DeviceOrchestrator, DeviceStatus
from devicemesh.errors import (
    CleanupError,
    CommandError,
    ConfigurationError,
    DeviceMeshError,
    DeviceNotFoundError,
    NoOnlineDevicesError,
    ScopeClosedError,
    TransientFailure,
)
from devicemesh.runtime.resources import ResourceScope, ScopeState, with_scope, with_temp_file

__version__ = "0.1.0"

__all__ = [
    "CacheEntry",
    "CleanupError",
    "CommandError",
    "CommandExecutor",
    "ConfigurationError",
    "DeviceDescriptor",
    "DeviceMeshError",
    "DeviceNotFoundError",
    "DeviceOrchestrator",
    "DeviceResult",
    "DeviceStatus",
    "FanoutResult",
    "MeshConfig",
    "NoOnlineDevicesError",
    "ResourceScope",
    "RetryPolicy",
    "ScopeClosedError",
    "ScopeState",
    "TTLCache",
    "TimeoutError",
    "TimeoutPolicy",
    "TransientFailure",
    "dispatch",
    "dispatch_online",
    "run_with_retry",
    "run_with_timeout",
    "with_scope",
    "with_temp_file",
]
