from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DeviceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"
    RECOVERY = "recovery"
    SIDELOAD = "sideload"
    BOOTLOADER = "bootloader"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, word: str) -> "DeviceStatus":
        """Map a device-state word as printed by device listings to a status."""
        word = word.strip().lower()
        if word in ("device", "online"):
            return cls.ONLINE
        if word in ("bootloader", "fastboot"):
            return cls.BOOTLOADER
        try:
            return cls(word)
        except ValueError:
            return cls.UNKNOWN


class DeviceDescriptor(BaseModel):
    """A device as reported by the executor's device listing."""

    id: str
    status: DeviceStatus = DeviceStatus.ONLINE
    name: Optional[str] = None
    model: Optional[str] = None
    product: Optional[str] = None
    transport_id: Optional[str] = None
    properties: dict[str, str] = Field(default_factory=dict)

    @property
    def online(self) -> bool:
        return self.status == DeviceStatus.ONLINE

    @property
    def display_name(self) -> str:
        return self.name or self.model or f"Device {self.id}"


__all__ = ["DeviceDescriptor", "DeviceStatus"]
