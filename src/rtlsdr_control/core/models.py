"""Data models for controlled devices and their sampling plans."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class DeviceDescriptor:
    """One physical RTL-SDR peripheral.

    Attributes:
        port: Hub port identifier used for registry lookup and error reports.
        usb_path: USB bus:device path (e.g. "1:4"), unique per plugged device.
        kind: Device type name reported on the event bus.
    """

    port: str
    usb_path: str
    kind: str = "rtlsdr"

    def clone(self) -> DeviceDescriptor:
        """Return an equal, independent descriptor for re-adding the device."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"port": self.port, "usb_path": self.usb_path, "kind": self.kind}


class Plan(BaseModel):
    """Operator sampling intent for a device.

    ``settings`` holds initial parameter values in natural units
    (e.g. ``{"frequency": 166.376, "tuner_gain": 10.5}``).
    """

    rate: float = Field(..., description="Desired sample rate in Hz")
    settings: dict[str, float] = Field(default_factory=dict)
