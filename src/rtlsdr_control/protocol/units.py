"""Conversion between rtl_tcp integer units and natural units.

Parameters accepted by rtl_tcp are all integers; deployment plans and
operators use natural units:

    parameter     rtl_tcp unit     natural unit
    ---------------------------------------------
    frequency     166376000 Hz     166.376 MHz
    tuner_gain    105 (0.1 dB)     10.5 dB
    if_gainN      stage<<16 | 0.1 dB   dB

Values are never clamped; the server decides what it accepts.
"""

from __future__ import annotations

import math
from typing import Any

FREQUENCY_SCALE: float = 1.0e6  # MHz -> Hz
GAIN_SCALE: float = 10.0  # dB -> 0.1 dB

IF_GAIN_STAGES: tuple[str, ...] = tuple(f"if_gain{n}" for n in range(1, 7))
GAIN_PARAMS: frozenset[str] = frozenset(("tuner_gain", *IF_GAIN_STAGES))

_IF_STAGE_SHIFT = 16
_IF_MAGNITUDE_MASK = 0xFFFF


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves towards positive infinity."""
    return math.floor(x + 0.5)


def if_gain_stage(name: str) -> int:
    """Stage number of an IF gain parameter (``if_gain3`` -> 3)."""
    return int(name[len("if_gain"):])


def encode_if_gain(stage: int, gain_db: float) -> int:
    """Pack an IF stage number and gain into one 32-bit wire value.

    The stage goes in the upper 16 bits; the gain in 0.1 dB goes in the
    lower 16 bits as two's complement.
    """
    magnitude = round_half_up(gain_db * GAIN_SCALE) & _IF_MAGNITUDE_MASK
    return (stage << _IF_STAGE_SHIFT) | magnitude


def decode_if_gain(value: int) -> tuple[int, float]:
    """Unpack a wire IF gain value into (stage, gain in dB)."""
    stage = value >> _IF_STAGE_SHIFT
    magnitude = value & _IF_MAGNITUDE_MASK
    if magnitude & 0x8000:
        magnitude -= 0x10000
    return stage, magnitude / GAIN_SCALE


def to_wire(name: str, value: float) -> int:
    """Convert a natural-unit parameter value to its rtl_tcp integer.

    Args:
        name: Parameter name (e.g. "frequency", "tuner_gain").
        value: Value in natural units.

    Returns:
        Integer value in rtl_tcp units.
    """
    if name == "frequency":
        return round_half_up(value * FREQUENCY_SCALE)
    if name == "tuner_gain":
        return round_half_up(value * GAIN_SCALE)
    if name in IF_GAIN_STAGES:
        return encode_if_gain(if_gain_stage(name), value)
    return round_half_up(value)


def from_wire_value(name: str, value: Any) -> Any:
    """Convert one reported rtl_tcp value to natural units."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return value
    if name == "frequency":
        return value / FREQUENCY_SCALE
    if name in GAIN_PARAMS:
        return value / GAIN_SCALE
    return value


def from_wire(settings: dict[str, Any]) -> dict[str, Any]:
    """Convert a full rtl_tcp settings reply to natural units.

    Names without units pass through unchanged.
    """
    return {name: from_wire_value(name, value) for name, value in settings.items()}
