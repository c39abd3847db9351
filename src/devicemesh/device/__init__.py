from .executor import CommandExecutor
from .orchestrator import DeviceOrchestrator
from .types import DeviceDescriptor, DeviceStatus

__all__ = [
    "CommandExecutor",
    "DeviceDescriptor",
    "DeviceOrchestrator",
    "DeviceStatus",
]
