"""RTLSDR Control - supervision and control of rtl_tcp sampling servers."""

from rtlsdr_control.controller import ControllerState, RTLSDRController
from rtlsdr_control.core.config import (
    DEFAULT_SAMPLE_RATE,
    MAX_SAMPLE_RATE,
    ControllerSettings,
)
from rtlsdr_control.core.exceptions import (
    ChannelError,
    CommandEncodeError,
    SDRError,
    ServerSpawnError,
)
from rtlsdr_control.core.models import DeviceDescriptor, Plan
from rtlsdr_control.gateway import DeviceRegistry, EventBus, EventJournal

__version__ = "0.1.0"

__all__ = [
    # Controller
    "RTLSDRController",
    "ControllerState",
    # Config
    "DEFAULT_SAMPLE_RATE",
    "MAX_SAMPLE_RATE",
    "ControllerSettings",
    # Models
    "DeviceDescriptor",
    "Plan",
    # Gateway
    "DeviceRegistry",
    "EventBus",
    "EventJournal",
    # Exceptions
    "SDRError",
    "ChannelError",
    "CommandEncodeError",
    "ServerSpawnError",
]
