"""Boundary to the device owner - events, registry and journal."""

from __future__ import annotations

from rtlsdr_control.gateway.events import (
    EVENT_TYPES,
    DataPeerDied,
    DeviceAdded,
    DeviceEvent,
    DeviceRemoved,
    DeviceStalled,
    EventBus,
    ParamSetFailed,
)
from rtlsdr_control.gateway.journal import EventJournal
from rtlsdr_control.gateway.registry import DeviceEntry, DeviceRegistry

__all__ = [
    "EVENT_TYPES",
    "DataPeerDied",
    "DeviceAdded",
    "DeviceEvent",
    "DeviceRemoved",
    "DeviceStalled",
    "EventBus",
    "ParamSetFailed",
    "EventJournal",
    "DeviceEntry",
    "DeviceRegistry",
]
