"""rtl_tcp control protocol: command frames and settings replies.

Commands are sent as a single opcode byte followed by a big-endian 32-bit
unsigned parameter. After connecting, rtl_tcp sends a 12-byte info header
and then one newline-terminated JSON object listing all current parameter
settings each time a command is processed.
"""

from __future__ import annotations

import json
import logging
import struct
from typing import Any

from rtlsdr_control.core.config import COMMAND_FRAME_BYTES, REPLY_PREAMBLE_BYTES
from rtlsdr_control.core.exceptions import CommandEncodeError, ProtocolError
from rtlsdr_control.protocol.units import from_wire, to_wire

logger = logging.getLogger(__name__)

_FRAME = struct.Struct(">BI")

# Opcodes recognized by rtl_tcp; values are in rtl_tcp integer units.
COMMANDS: dict[str, int] = {
    "frequency": 1,  # Hz
    "rate": 2,  # Hz
    "gain_mode": 3,  # 0 = auto, 1 = manual gains allowed
    "tuner_gain": 4,  # 0.1 dB; nearest available gain is selected
    "freq_correction": 5,  # ppm
    # IF stages share one opcode; the stage is encoded in the upper 16 bits
    "if_gain1": 6,
    "if_gain2": 6,
    "if_gain3": 6,
    "if_gain4": 6,
    "if_gain5": 6,
    "if_gain6": 6,
    "test_mode": 7,  # send a counter instead of samples
    "agc_mode": 8,
    "direct_sampling": 9,  # not for frequencies above 10 MHz
    "offset_tuning": 10,
    "rtl_xtal": 11,
    "tuner_xtal": 12,
    "tuner_gain_index": 13,
    "streaming": 14,  # start (1) or stop (0) sending samples on the data connection
}


def is_known_command(name: str) -> bool:
    """Check if ``name`` is a parameter rtl_tcp accepts."""
    return name in COMMANDS


def encode_command(name: str, value: float) -> bytes | None:
    """Build the 5-byte frame setting ``name`` to ``value``.

    Args:
        name: Parameter name.
        value: Value in natural units.

    Returns:
        The frame, or None if ``name`` is not a known command.

    Raises:
        CommandEncodeError: If the value does not fit the wire format.
    """
    opcode = COMMANDS.get(name)
    if opcode is None:
        return None

    try:
        return _FRAME.pack(opcode, to_wire(name, value))
    except (struct.error, TypeError, ValueError, OverflowError) as e:
        raise CommandEncodeError(name, value, str(e)) from e


def decode_command(frame: bytes) -> tuple[int, int]:
    """Split a command frame into (opcode, wire value).

    Raises:
        ProtocolError: If ``frame`` is not exactly one command long.
    """
    if len(frame) != COMMAND_FRAME_BYTES:
        raise ProtocolError(f"Command frame must be {COMMAND_FRAME_BYTES} bytes", f"got {len(frame)}")
    return _FRAME.unpack(frame)


class ReplyDecoder:
    """Incremental decoder for the rtl_tcp reply stream.

    Replies normally fit in one read, but the stream is treated as
    newline-delimited JSON so any split or coalescing of reads is handled.
    One decoder serves one connection.

    Example:
        >>> decoder = ReplyDecoder()
        >>> decoder.feed(header + b'{"frequency": 166376000}\\n')
        [{'frequency': 166.376}]
    """

    def __init__(self, preamble_bytes: int = REPLY_PREAMBLE_BYTES) -> None:
        self._preamble_remaining = preamble_bytes
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes of the incomplete record held for the next read."""
        return bytes(self._buffer)

    def feed(self, data: bytes) -> list[dict[str, Any]]:
        """Consume received bytes and return completed settings snapshots.

        Args:
            data: Bytes as read from the control socket.

        Returns:
            Settings in natural units, one dict per complete reply, in order.
        """
        if self._preamble_remaining:
            skipped = min(self._preamble_remaining, len(data))
            self._preamble_remaining -= skipped
            data = data[skipped:]

        self._buffer.extend(data)

        snapshots: list[dict[str, Any]] = []
        while True:
            eol = self._buffer.find(b"\n")
            if eol < 0:
                break
            record = bytes(self._buffer[:eol])
            del self._buffer[: eol + 1]

            settings = self._parse(record)
            if settings is not None:
                snapshots.append(from_wire(settings))

        return snapshots

    def _parse(self, record: bytes) -> dict[str, Any] | None:
        if not record.strip():
            return None

        try:
            settings = json.loads(record.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to parse settings reply: %s - %r", e, record[:100])
            return None

        if not isinstance(settings, dict):
            logger.warning("Ignoring non-object settings reply: %r", record[:100])
            return None
        return settings
