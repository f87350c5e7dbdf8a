"""rtl_tcp control protocol - units, frames, replies and the control channel."""

from __future__ import annotations

from rtlsdr_control.protocol.channel import ControlChannel
from rtlsdr_control.protocol.codec import (
    COMMANDS,
    ReplyDecoder,
    decode_command,
    encode_command,
    is_known_command,
)
from rtlsdr_control.protocol.units import (
    decode_if_gain,
    encode_if_gain,
    from_wire,
    to_wire,
)

__all__ = [
    "COMMANDS",
    "ControlChannel",
    "ReplyDecoder",
    "decode_command",
    "encode_command",
    "is_known_command",
    "decode_if_gain",
    "encode_if_gain",
    "from_wire",
    "to_wire",
]
