"""
Fan-out of one operation across many devices on a thread pool.

Every device runs to completion independently. A failure on one device is
captured into that device's slot and never stops or hides the others.
"""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

from devicemesh.config.logging_config import get_logger
from devicemesh.errors import ConfigurationError, NoOnlineDevicesError

if TYPE_CHECKING:
    from devicemesh.device.executor import CommandExecutor
    from devicemesh.device.types import DeviceDescriptor

log = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_WORKERS = 8


@dataclass
class DeviceResult(Generic[T]):
    """Outcome of an operation on a single device."""

    device_id: str
    value: T | None = None
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        """Return True if the operation completed without raising."""
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or re-raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class FanoutResult(dict[str, DeviceResult[Any]]):
    """Mapping from device id to its DeviceResult, one entry per requested device."""

    @property
    def succeeded(self) -> dict[str, Any]:
        """Values of the devices whose operation succeeded."""
        return {device_id: r.value for device_id, r in self.items() if r.success}

    @property
    def failed(self) -> dict[str, BaseException]:
        """Errors of the devices whose operation failed."""
        return {device_id: r.error for device_id, r in self.items() if r.error is not None}

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.values())


def _unique(items: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        if item in seen:
            log.debug(f"Ignoring duplicate device id in fan-out: {item}")
            continue
        seen[item] = None
    return list(seen)


def dispatch(
    items: Iterable[str],
    operation: Callable[[str], T],
    max_workers: int | None = None,
) -> FanoutResult:
    """
    Run ``operation`` once per device id, concurrently, and collect every outcome.

    There is no ordering between devices and no early exit: the call returns
    once every operation has finished. Exceptions are captured into the
    device's DeviceResult rather than raised. Duplicate ids run once.

    Only ``Exception`` subclasses are captured. A ``BaseException`` such as
    ``KeyboardInterrupt`` or ``SystemExit`` raised by one operation propagates
    out of ``dispatch`` once the pool has shut down, and the other devices'
    results are discarded.

    Args:
        items: Device ids to run on.
        operation: Function called with each device id.
        max_workers: Thread pool size (default: 8, never more than the number of devices).

    Returns:
        FanoutResult with exactly one entry per distinct device id.

    Raises:
        ConfigurationError: If max_workers is not a positive integer.

    Example:
        results = dispatch(
            ["emulator-5554", "emulator-5556"],
            lambda device_id: executor.execute(device_id, "getprop ro.product.model"),
        )
        for device_id, result in results.items():
            if result.success:
                print(device_id, result.value.strip())
    """
    if max_workers is not None and max_workers <= 0:
        raise ConfigurationError("max_workers must be a positive integer")

    device_ids = _unique(items)
    results = FanoutResult()
    if not device_ids:
        return results

    workers = min(max_workers or DEFAULT_MAX_WORKERS, len(device_ids))

    def run_one(device_id: str) -> DeviceResult[T]:
        try:
            return DeviceResult(device_id=device_id, value=operation(device_id))
        except Exception as e:
            log.warning(f"Operation failed on device {device_id}: {e}", extra={"device_id": device_id})
            return DeviceResult(device_id=device_id, error=e)

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="devicemesh-dispatch") as pool:
        futures = {pool.submit(run_one, device_id): device_id for device_id in device_ids}
        for future in concurrent.futures.as_completed(futures):
            results[futures[future]] = future.result()

    # Report in input order
    return FanoutResult((device_id, results[device_id]) for device_id in device_ids)


def online_device_ids(
    executor: "CommandExecutor",
    device_lister: Optional[Callable[[], list["DeviceDescriptor"]]] = None,
) -> list[str]:
    """Return the ids of every device reported as online.

    ``device_lister`` replaces ``executor.list_devices``, for example with a
    retrying wrapper.
    """
    devices = (device_lister or executor.list_devices)()
    online = [device.id for device in devices if device.online]
    log.debug(f"{len(online)} of {len(devices)} devices online")
    return online


def filter_online(
    executor: "CommandExecutor",
    device_ids: Iterable[str],
    device_lister: Optional[Callable[[], list["DeviceDescriptor"]]] = None,
) -> list[str]:
    """
    Keep only the ids that the executor currently reports as online.

    Unknown ids are dropped. Input order is preserved.
    """
    online = set(online_device_ids(executor, device_lister))
    return [device_id for device_id in _unique(device_ids) if device_id in online]


def dispatch_online(
    executor: "CommandExecutor",
    operation: Callable[[str], T],
    max_workers: int | None = None,
    device_lister: Optional[Callable[[], list["DeviceDescriptor"]]] = None,
) -> FanoutResult:
    """
    Run ``operation`` on every device that is currently online.

    Args:
        executor: Source of the device list.
        operation: Function called with each online device id.
        max_workers: Thread pool size.
        device_lister: Replaces ``executor.list_devices`` for finding online devices.

    Returns:
        FanoutResult keyed by the online device ids.

    Raises:
        NoOnlineDevicesError: If no device is online.
        Exception: Whatever the device listing raises.
    """
    device_ids = online_device_ids(executor, device_lister)
    if not device_ids:
        raise NoOnlineDevicesError()
    log.info(f"Dispatching to {len(device_ids)} online device(s)")
    return dispatch(device_ids, operation, max_workers=max_workers)


__all__ = [
    "DeviceResult",
    "FanoutResult",
    "dispatch",
    "dispatch_online",
    "filter_online",
    "online_device_ids",
]
