"""Registry of attached devices and their reported settings.

Each controller is handed its own ``DeviceEntry`` at construction and only
ever replaces that entry's settings; other code reads them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rtlsdr_control.core.models import DeviceDescriptor

logger = logging.getLogger(__name__)


@dataclass
class DeviceEntry:
    """Registry record for one attached device."""

    descriptor: DeviceDescriptor
    settings: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime | None = None
    update_count: int = 0

    def update_settings(self, settings: dict[str, Any]) -> None:
        """Replace the settings snapshot with the server's latest report."""
        self.settings = dict(settings)
        self.updated_at = datetime.now()
        self.update_count += 1


class DeviceRegistry:
    """In-memory registry of attached devices keyed by port.

    Example:
        >>> registry = DeviceRegistry()
        >>> entry = registry.add(DeviceDescriptor(port="3", usb_path="1:4"))
        >>> entry.update_settings({"frequency": 166.376})
        >>> registry.get("3").settings["frequency"]
        166.376
    """

    def __init__(self) -> None:
        self._entries: dict[str, DeviceEntry] = {}

    @property
    def device_count(self) -> int:
        """Number of attached devices."""
        return len(self._entries)

    def add(self, descriptor: DeviceDescriptor) -> DeviceEntry:
        """Register a device, replacing any previous entry on its port.

        Args:
            descriptor: The attached device.

        Returns:
            The new entry.
        """
        if descriptor.port in self._entries:
            logger.info("Replacing device on port %s", descriptor.port)
        entry = DeviceEntry(descriptor=descriptor)
        self._entries[descriptor.port] = entry
        logger.info("Device added on port %s (usb %s)", descriptor.port, descriptor.usb_path)
        return entry

    def remove(self, port: str) -> DeviceEntry | None:
        """Unregister the device on ``port``.

        Returns:
            The removed entry, if there was one.
        """
        entry = self._entries.pop(port, None)
        if entry is not None:
            logger.info("Device removed from port %s", port)
        return entry

    def get(self, port: str) -> DeviceEntry | None:
        """Get the entry for ``port``."""
        return self._entries.get(port)

    def get_all(self) -> list[DeviceEntry]:
        """Get all entries sorted by port."""
        return [self._entries[port] for port in sorted(self._entries)]

