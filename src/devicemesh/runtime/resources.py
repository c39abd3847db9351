"""
Scoped tracking and cleanup of temporary files created on a device.

A ResourceScope collects remote paths while an operation runs and removes
all of them when the scope ends, whether the operation returned, raised, or
was interrupted. Removal is best-effort: a failed removal is recorded and
the remaining paths are still attempted.

Example:
    with ResourceScope(executor, "emulator-5554") as scope:
        scope.track("/sdcard/screen.png")
        executor.execute("emulator-5554", "screencap -p /sdcard/screen.png")
        download("/sdcard/screen.png")
    # /sdcard/screen.png has been removed here, even if download() raised
"""

from __future__ import annotations

import secrets
import shlex
import threading
import time
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from devicemesh.config.logging_config import get_logger
from devicemesh.errors import CleanupError, ScopeClosedError

if TYPE_CHECKING:
    from devicemesh.device.executor import CommandExecutor

log = get_logger(__name__)

T = TypeVar("T")

DEFAULT_REMOVE_COMMAND = "rm -f {path}"
DEFAULT_TEMP_DIR = "/sdcard"


class ScopeState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class ResourceScope:
    """Per-operation scope that owns temporary files on one device.

    The tracked-path list is guarded by a lock, so workers of a fan-out may
    share one scope. A closed scope cannot be re-entered; create a new one.
    """

    def __init__(
        self,
        executor: "CommandExecutor",
        device_id: str,
        remove_command: str = DEFAULT_REMOVE_COMMAND,
    ) -> None:
        """Initialize a ResourceScope.

        Args:
            executor: Used to run the removal command on the device.
            device_id: Device on which the tracked paths live.
            remove_command: Removal command template with a ``{path}``
                placeholder; the path is shell-quoted before substitution.
        """
        self.executor = executor
        self.device_id = device_id
        self.remove_command = remove_command
        self._paths: list[str] = []
        self._lock = threading.Lock()
        self._state = ScopeState.CREATED
        self._started_at = time.monotonic()

    @property
    def state(self) -> ScopeState:
        return self._state

    @property
    def tracked(self) -> tuple[str, ...]:
        """Snapshot of the paths awaiting removal, in tracking order."""
        with self._lock:
            return tuple(self._paths)

    @property
    def elapsed(self) -> float:
        """Seconds since the scope was created."""
        return time.monotonic() - self._started_at

    def __enter__(self) -> ResourceScope:
        with self._lock:
            if self._state != ScopeState.CREATED:
                raise ScopeClosedError(
                    self.device_id,
                    f"Resource scope for {self.device_id} cannot be entered twice",
                )
            self._state = ScopeState.ACTIVE
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def track(self, path: str) -> None:
        """Register a remote path for removal when the scope ends."""
        with self._lock:
            if self._state in (ScopeState.CLOSING, ScopeState.CLOSED):
                raise ScopeClosedError(self.device_id)
            self._paths.append(path)
        log.debug(f"Tracking temporary file on {self.device_id}: {path}")

    def _remove_all(self) -> list[tuple[str, BaseException]]:
        with self._lock:
            paths, self._paths = self._paths, []

        failures: list[tuple[str, BaseException]] = []
        for path in paths:
            command = self.remove_command.format(path=shlex.quote(path))
            try:
                self.executor.execute(self.device_id, command)
                log.debug(f"Removed temporary file on {self.device_id}: {path}")
            except Exception as e:
                log.warning(
                    f"Failed to remove temporary file {path} on {self.device_id}: {e}",
                    extra={"device_id": self.device_id, "command": command},
                )
                failures.append((path, e))
        return failures

    def cleanup(self) -> None:
        """Remove every tracked path now.

        The tracked list is emptied whatever the outcome, so calling this again
        (or on a closed scope) is a no-op.

        Raises:
            CleanupError: If any removal failed, listing each failed path and its cause.
        """
        failures = self._remove_all()
        if failures:
            raise CleanupError(self.device_id, failures)

    def close(self) -> None:
        """End the scope, attempting removal of every tracked path.

        Removal failures are logged, never raised, so they cannot mask the
        outcome of the operation the scope wrapped.
        """
        with self._lock:
            if self._state == ScopeState.CLOSED:
                return
            self._state = ScopeState.CLOSING
            pending = len(self._paths)

        try:
            if pending:
                log.info(f"Cleaning up {pending} temporary file(s) on device {self.device_id}")
                failures = self._remove_all()
                if failures:
                    log.warning(
                        f"{len(failures)} temporary file(s) left on {self.device_id}: "
                        + ", ".join(path for path, _ in failures)
                    )
        finally:
            with self._lock:
                self._state = ScopeState.CLOSED


def with_scope(
    executor: "CommandExecutor",
    device_id: str,
    body: Callable[[ResourceScope], T],
    remove_command: str = DEFAULT_REMOVE_COMMAND,
) -> T:
    """
    Run ``body`` inside a ResourceScope bound to ``device_id``.

    Returns:
        Whatever ``body`` returns. If ``body`` raises, the exception propagates
        unchanged after cleanup has been attempted.

    Example:
        def capture(scope: ResourceScope) -> bytes:
            path = "/sdcard/capture.png"
            scope.track(path)
            executor.execute(device_id, f"screencap -p {path}")
            return pull(device_id, path)

        data = with_scope(executor, device_id, capture)
    """
    with ResourceScope(executor, device_id, remove_command=remove_command) as scope:
        return body(scope)


def make_temp_path(
    prefix: str,
    suffix: str = "",
    directory: str = DEFAULT_TEMP_DIR,
    now: Optional[datetime] = None,
) -> str:
    """Build a unique remote temporary path from a timestamp and a random token."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"{directory.rstrip('/')}/{prefix}_{stamp}_{secrets.token_hex(4)}{suffix}"


def with_temp_file(
    executor: "CommandExecutor",
    device_id: str,
    body: Callable[[str], T],
    prefix: str = "tmp",
    suffix: str = "",
    directory: str = DEFAULT_TEMP_DIR,
) -> T:
    """
    Run ``body`` with a fresh temporary path on the device, removed afterwards.

    The file is not created; ``body`` receives the path and is expected to
    write it (for example with a screencap or screenrecord command).
    """
    path = make_temp_path(prefix, suffix, directory)

    def run(scope: ResourceScope) -> T:
        scope.track(path)
        return body(path)

    return with_scope(executor, device_id, run)


__all__ = [
    "DEFAULT_REMOVE_COMMAND",
    "ResourceScope",
    "ScopeState",
    "make_temp_path",
    "with_scope",
    "with_temp_file",
]
