"""Configuration constants and controller settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

# =============================================================================
# Sample Rates
# =============================================================================
DEFAULT_SAMPLE_RATE: int = 48_000  # used when the plan rate is unusable
MAX_SAMPLE_RATE: int = 3_200_000  # RTL-SDR maximum

# Valid hardware rate ranges (inclusive); the gap between them is unusable
HARDWARE_RATE_RANGES: tuple[tuple[int, int], ...] = (
    (225_001, 300_000),
    (900_001, 3_200_000),
)

# =============================================================================
# USB Buffering
# =============================================================================
USB_BLOCK_BYTES: int = 512  # libusb transfer granularity
USB_BUFFER_SECONDS: float = 0.100  # ~100 ms of I/Q per transfer buffer
BYTES_PER_IQ_PAIR: int = 2

# =============================================================================
# Sampling Server
# =============================================================================
DEFAULT_SERVER_PROGRAM: str = "/usr/bin/rtl_tcp"
DEFAULT_SOCKET_DIR: Path = Path("/tmp")
READY_MARKER: str = "Listening"
DEVICE_PATH_PREFIX: str = "rtlsdr:"

# =============================================================================
# Control Protocol
# =============================================================================
REPLY_PREAMBLE_BYTES: int = 12  # info header sent once per connection
COMMAND_FRAME_BYTES: int = 5

# =============================================================================
# Recovery Timing
# =============================================================================
STALL_DELAY_SECONDS: float = 5.001
READD_DELAY_SECONDS: float = 5.0


class ControllerSettings(BaseModel):
    """Runtime settings for one RTL-SDR controller.

    Defaults match a stock deployment; tests shrink the delays.
    """

    server_program: str = Field(
        default=DEFAULT_SERVER_PROGRAM,
        description="Path to the sampling server executable",
    )
    socket_dir: Path = Field(
        default=DEFAULT_SOCKET_DIR,
        description="Directory holding per-device control sockets",
    )
    ready_marker: str = Field(
        default=READY_MARKER,
        description="Text the server prints on stdout once it accepts connections",
    )
    stall_delay_seconds: float = Field(default=STALL_DELAY_SECONDS, ge=0)
    readd_delay_seconds: float = Field(default=READD_DELAY_SECONDS, ge=0)

    def socket_path_for(self, usb_path: str) -> Path:
        """Control socket path for a device at ``usb_path`` (bus:dev)."""
        return self.socket_dir / f"rtlsdr-{usb_path}.sock"
