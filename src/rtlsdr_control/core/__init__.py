"""Core definitions - configuration, device models, rates, exceptions."""

from rtlsdr_control.core.config import (
    DEFAULT_SAMPLE_RATE,
    MAX_SAMPLE_RATE,
    ControllerSettings,
)
from rtlsdr_control.core.exceptions import (
    ChannelError,
    CommandEncodeError,
    ProtocolError,
    SDRError,
    ServerError,
    ServerSpawnError,
)
from rtlsdr_control.core.models import DeviceDescriptor, Plan
from rtlsdr_control.core.rates import resolve_hardware_rate, usb_buffer_size

__all__ = [
    "ControllerSettings",
    "DEFAULT_SAMPLE_RATE",
    "MAX_SAMPLE_RATE",
    "DeviceDescriptor",
    "Plan",
    "resolve_hardware_rate",
    "usb_buffer_size",
    "SDRError",
    "ServerError",
    "ServerSpawnError",
    "ProtocolError",
    "CommandEncodeError",
    "ChannelError",
]
