"""
The command executor protocol.

devicemesh never talks to devices itself. Everything goes through an object
with two blocking methods, implemented elsewhere (a subprocess wrapper around
a device bridge binary, an SSH client, a test double).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from devicemesh.device.types import DeviceDescriptor


@runtime_checkable
class CommandExecutor(Protocol):
    """Runs commands on devices and lists the devices it can reach."""

    def execute(self, device_id: str, command: str) -> str:
        """Run ``command`` on the device and return its captured text output.

        May block for an arbitrary time. Raises CommandError (or another
        exception) on a non-zero exit or transport failure, and
        DeviceNotFoundError when the device id is unknown.
        """
        ...

    def list_devices(self) -> list[DeviceDescriptor]:
        """Return every device currently known, online or not."""
        ...


__all__ = ["CommandExecutor"]
