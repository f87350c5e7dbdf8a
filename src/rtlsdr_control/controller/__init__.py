"""Device controller and its state machine."""

from __future__ import annotations

from rtlsdr_control.controller.device import RTLSDRController
from rtlsdr_control.controller.states import ACTIVE_STATES, ControllerState, transition
from rtlsdr_control.controller.timers import TimerSet

__all__ = [
    "RTLSDRController",
    "ACTIVE_STATES",
    "ControllerState",
    "transition",
    "TimerSet",
]
