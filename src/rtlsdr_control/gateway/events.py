"""Device events and the in-process bus that carries them.

The bus connects controllers to their owner: controllers announce device
removal, re-addition and parameter failures; the owner announces the death
of the data-plane consumer and data stalls.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from rtlsdr_control.core.models import DeviceDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceEvent:
    """Base class for bus events."""

    name: ClassVar[str] = "device_event"
    timestamp: datetime = field(default_factory=datetime.now, compare=False, kw_only=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"event": self.name, "timestamp": self.timestamp.isoformat()}


@dataclass(frozen=True)
class DeviceAdded(DeviceEvent):
    """A device is present and should get a controller."""

    name: ClassVar[str] = "device_added"
    descriptor: DeviceDescriptor

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), **self.descriptor.to_dict()}


@dataclass(frozen=True)
class DeviceRemoved(DeviceEvent):
    """A device is gone and its controller should shut down."""

    name: ClassVar[str] = "device_removed"
    descriptor: DeviceDescriptor

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), **self.descriptor.to_dict()}


@dataclass(frozen=True)
class DeviceStalled(DeviceEvent):
    """Sample data from a device stopped arriving."""

    name: ClassVar[str] = "device_stalled"
    descriptor: DeviceDescriptor

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), **self.descriptor.to_dict()}


@dataclass(frozen=True)
class DataPeerDied(DeviceEvent):
    """The consumer process holding the data connections exited."""

    name: ClassVar[str] = "data_peer_died"


@dataclass(frozen=True)
class ParamSetFailed(DeviceEvent):
    """A parameter command could not be encoded or sent."""

    name: ClassVar[str] = "param_set_failed"
    kind: str
    port: str
    par: str
    val: Any
    err: str

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "type": self.kind,
            "port": self.port,
            "par": self.par,
            "val": self.val,
            "err": self.err,
        }


EVENT_TYPES: tuple[type[DeviceEvent], ...] = (
    DeviceAdded,
    DeviceRemoved,
    DeviceStalled,
    DataPeerDied,
    ParamSetFailed,
)

EventHandler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe dispatch keyed by event type.

    Handlers run in subscription order on the caller's thread. A failing
    handler is logged and does not stop delivery to the others.

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe(DeviceRemoved, lambda e: print(e.descriptor.port))
        >>> bus.emit(DeviceRemoved(descriptor))
        1
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DeviceEvent], list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[DeviceEvent], handler: EventHandler) -> None:
        """Register ``handler`` for events of ``event_type``."""
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register ``handler`` for every event type."""
        for event_type in EVENT_TYPES:
            self.subscribe(event_type, handler)

    def unsubscribe(self, event_type: type[DeviceEvent], handler: EventHandler) -> bool:
        """Remove a handler.

        Returns:
            True if the handler was registered.
        """
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def handler_count(self, event_type: type[DeviceEvent]) -> int:
        """Number of handlers registered for ``event_type``."""
        return len(self._handlers.get(event_type, []))

    def emit(self, event: DeviceEvent) -> int:
        """Deliver ``event`` to its subscribers.

        Args:
            event: The event to deliver.

        Returns:
            Number of handlers that ran without raising.
        """
        delivered = 0
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.warning("Handler for %s failed: %s", event.name, e, exc_info=True)
        return delivered
