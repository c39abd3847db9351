"""
Exception types raised by devicemesh.

Every error carries enough context for the caller to tell what failed and
where: a transport failure is never reported as a missing device, and a
cleanup failure lists every path that could not be removed.
"""

from __future__ import annotations


class DeviceMeshError(Exception):
    """Base class for all devicemesh errors."""

    pass


class ConfigurationError(DeviceMeshError, ValueError):
    """Raised for invalid policies, settings or cache keys."""

    pass


class CommandError(DeviceMeshError):
    """Raised when a command fails on a device (non-zero exit or transport error).

    This is the retryable failure kind: the backoff executor retries it.
    """

    def __init__(
        self,
        message: str,
        device_id: str | None = None,
        command: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.device_id = device_id
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


TransientFailure = CommandError


class DeviceNotFoundError(DeviceMeshError):
    """Raised when a device id is not known to the executor."""

    def __init__(self, device_id: str):
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id


class NoOnlineDevicesError(DeviceMeshError):
    """Raised when a fan-out over all online devices finds none."""

    def __init__(self, message: str = "No online devices available"):
        super().__init__(message)
        self.message = message


class CleanupError(DeviceMeshError):
    """Raised by an explicit cleanup when one or more tracked paths could not be removed."""

    def __init__(self, device_id: str, failures: list[tuple[str, BaseException]]):
        self.device_id = device_id
        self.failures = list(failures)
        details = ", ".join(f"{path}: {error}" for path, error in self.failures)
        super().__init__(
            f"Failed to remove {len(self.failures)} temporary file(s) on {device_id}: {details}"
        )

    @property
    def failed_paths(self) -> list[str]:
        """Return the paths whose removal failed, in tracking order."""
        return [path for path, _ in self.failures]


class ScopeClosedError(DeviceMeshError):
    """Raised when a closed resource scope is entered or tracked again."""

    def __init__(self, device_id: str, message: str | None = None):
        super().__init__(message or f"Resource scope for {device_id} is closed")
        self.device_id = device_id


__all__ = [
    "CleanupError",
    "CommandError",
    "ConfigurationError",
    "DeviceMeshError",
    "DeviceNotFoundError",
    "NoOnlineDevicesError",
    "ScopeClosedError",
    "TransientFailure",
]
