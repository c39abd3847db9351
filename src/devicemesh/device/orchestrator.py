"""
High-level device operations composed from the concurrency core.

DeviceOrchestrator wraps a CommandExecutor with the configured retry and
timeout policies, keeps its own version and process-id caches, and offers
fan-out and scoped-cleanup helpers. Caches are created per orchestrator
unless injected, so two orchestrators never share cached facts by accident.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Optional, TypeVar

from devicemesh.concurrency.dispatch import DeviceResult, FanoutResult, dispatch, dispatch_online, filter_online
from devicemesh.concurrency.polling import wait_with_polling
from devicemesh.concurrency.retry import RetryPolicy, run_with_retry
from devicemesh.concurrency.timeout import TimeoutPolicy
from devicemesh.concurrency.ttl_cache import TTLCache
from devicemesh.config.logging_config import get_logger
from devicemesh.config.mesh_config import MeshConfig
from devicemesh.device.executor import CommandExecutor
from devicemesh.device.types import DeviceDescriptor
from devicemesh.runtime.resources import ResourceScope, with_scope, with_temp_file

log = get_logger(__name__)

T = TypeVar("T")

DEFAULT_OS_VERSION = 5.0

_INT_TOKEN = re.compile(r"\d+")


class DeviceOrchestrator:
    """
    Resilient operations against the devices reachable through an executor.

    Example:
        orchestrator = DeviceOrchestrator(executor, MeshConfig(max_retries=2))

        models = orchestrator.parallel_shell(["emulator-5554", "R58M123"], "getprop ro.product.model")
        pid = orchestrator.get_pid("emulator-5554", "com.example.app")

        with orchestrator.scope("emulator-5554") as scope:
            scope.track("/sdcard/dump.txt")
            orchestrator.shell("emulator-5554", "dumpsys activity > /sdcard/dump.txt")
    """

    def __init__(
        self,
        executor: CommandExecutor,
        config: Optional[MeshConfig] = None,
        version_cache: Optional[TTLCache[str, float]] = None,
        pid_cache: Optional[TTLCache[tuple[str, str], int]] = None,
    ):
        self.executor = executor
        self.config = config or MeshConfig.from_environment()
        self.retry_policy: RetryPolicy = self.config.retry_policy()
        self.timeout_policy: TimeoutPolicy = self.config.timeout_policy()
        self.version_cache: TTLCache[str, float] = version_cache or TTLCache(
            ttl=self.config.version_cache_ttl, name="os-version"
        )
        self.pid_cache: TTLCache[tuple[str, str], int] = pid_cache or TTLCache(
            ttl=self.config.pid_cache_ttl, name="pid"
        )

    # -- resilience ---------------------------------------------------------

    def with_retry(self, func: Callable[[], T]) -> T:
        return run_with_retry(self.retry_policy, func)

    def with_timeout(self, func: Callable[[], T], timeout_seconds: Optional[float] = None) -> T:
        return self.timeout_policy.execute(func, timeout_seconds=timeout_seconds)

    # -- device access ------------------------------------------------------

    def shell(self, device_id: str, command: str) -> str:
        """Run a command on a device, retrying failures per the retry policy."""
        output = run_with_retry(
            self.retry_policy,
            lambda: self.executor.execute(device_id, command),
            context={"device_id": device_id, "command": command},
        )
        log.debug(f"Command '{command}' on {device_id} returned {len(output)} chars")
        return output

    def list_devices(self) -> list[DeviceDescriptor]:
        devices = self.with_retry(self.executor.list_devices)
        log.info(f"Found {len(devices)} device(s)")
        return devices

    def is_device_online(self, device_id: str) -> bool:
        return any(device.id == device_id and device.online for device in self.list_devices())

    def filter_online_devices(self, device_ids: Iterable[str]) -> list[str]:
        return filter_online(self.executor, device_ids, device_lister=self.list_devices)

    def wait_for_device(
        self,
        device_id: str,
        timeout_seconds: float = 30.0,
        poll_interval: float = 0.5,
    ) -> bool:
        """Block until the device is online or the timeout elapses."""
        log.info(f"Waiting for device {device_id}...")

        def report(elapsed: float) -> None:
            log.debug(f"Still waiting for {device_id} after {elapsed:.1f}s")

        online = wait_with_polling(
            lambda: self.is_device_online(device_id),
            timeout_seconds=timeout_seconds,
            poll_interval=poll_interval,
            on_tick=report,
        )
        if online:
            log.info(f"Device {device_id} is online")
        else:
            log.warning(f"Timed out waiting for device {device_id}")
        return online

    def get_prop(self, device_id: str, name: str) -> str:
        return self.shell(device_id, f"getprop {name}").strip()

    # -- cached facts -------------------------------------------------------

    def get_os_version(self, device_id: str) -> float:
        """
        Major OS version of a device, cached per device.

        Unparseable output falls back to a conservative default rather than
        failing, since callers only use it to pick command variants.
        """

        def read_version() -> float:
            raw = self.get_prop(device_id, "ro.build.version.release")
            major = raw.split(".")[0]
            try:
                return float(major)
            except ValueError:
                log.warning(f"Cannot parse OS version '{raw}' on {device_id}, assuming {DEFAULT_OS_VERSION}")
                return DEFAULT_OS_VERSION

        return self.version_cache.get_or_compute(device_id, read_version)

    def get_pid(self, device_id: str, process_name: str) -> Optional[int]:
        """
        Process id of a running process on a device, or None if not running.

        Found ids are cached briefly; a missing process is never cached.
        """
        key = (device_id, process_name)
        cached = self.pid_cache.get(key)
        if cached is not None:
            return cached

        output = self.shell(device_id, f"pidof {process_name}")
        match = _INT_TOKEN.search(output)
        if match is None:
            log.debug(f"No pid for {process_name} on {device_id}")
            return None

        pid = int(match.group())
        self.pid_cache.set(key, pid)
        return pid

    def invalidate_device(self, device_id: str) -> None:
        """Forget cached facts about a device, e.g. after a reboot."""
        self.version_cache.invalidate(device_id)
        for key in self.pid_cache.keys():
            if key[0] == device_id:
                self.pid_cache.invalidate(key)

    # -- fan-out ------------------------------------------------------------

    def parallel_shell(self, device_ids: Iterable[str], command: str) -> FanoutResult:
        return dispatch(
            device_ids,
            lambda device_id: self.shell(device_id, command),
            max_workers=self.config.max_workers,
        )

    def parallel_commands(self, device_ids: Iterable[str], commands: list[str]) -> FanoutResult:
        """Run several commands in sequence on each device, devices in parallel.

        Every command is attempted on every device. A device's value is a list
        with one DeviceResult per command, in command order, so a failing
        command neither skips the later ones nor hides the earlier outputs.

        Example:
            results = orchestrator.parallel_commands(["d1", "d2"], ["getprop ro.serialno", "uptime"])
            serial, uptime = results["d1"].value
            if uptime.success:
                print(uptime.value)
        """

        def run_all(device_id: str) -> list[DeviceResult[str]]:
            outcomes: list[DeviceResult[str]] = []
            for command in commands:
                try:
                    outcomes.append(DeviceResult(device_id=device_id, value=self.shell(device_id, command)))
                except Exception as e:
                    log.warning(
                        f"Command '{command}' failed on device {device_id}: {e}",
                        extra={"device_id": device_id, "command": command},
                    )
                    outcomes.append(DeviceResult(device_id=device_id, error=e))
            return outcomes

        return dispatch(device_ids, run_all, max_workers=self.config.max_workers)

    def on_all_online_devices(self, operation: Callable[[str], T]) -> FanoutResult:
        """Run ``operation`` on every online device, listing devices with retry."""
        return dispatch_online(
            self.executor,
            operation,
            max_workers=self.config.max_workers,
            device_lister=self.list_devices,
        )

    # -- scoped resources ---------------------------------------------------

    def scope(self, device_id: str) -> ResourceScope:
        return ResourceScope(self.executor, device_id)

    def with_resources(self, device_id: str, body: Callable[[ResourceScope], T]) -> T:
        return with_scope(self.executor, device_id, body)

    def with_temp_file(
        self,
        device_id: str,
        body: Callable[[str], T],
        prefix: str = "tmp",
        suffix: str = "",
    ) -> T:
        return with_temp_file(self.executor, device_id, body, prefix=prefix, suffix=suffix)


__all__ = ["DeviceOrchestrator"]
