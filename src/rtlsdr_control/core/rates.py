"""Hardware sample-rate selection and USB buffer sizing."""

from __future__ import annotations

import logging
import math

from rtlsdr_control.core.config import (
    BYTES_PER_IQ_PAIR,
    DEFAULT_SAMPLE_RATE,
    HARDWARE_RATE_RANGES,
    MAX_SAMPLE_RATE,
    USB_BLOCK_BYTES,
    USB_BUFFER_SECONDS,
)

logger = logging.getLogger(__name__)


def is_hardware_rate(rate: float) -> bool:
    """Check if the tuner can sample at ``rate`` directly."""
    return any(low <= rate <= high for low, high in HARDWARE_RATE_RANGES)


def resolve_hardware_rate(requested: float) -> int:
    """Find the hardware rate to use for a requested sample rate.

    Returns the smallest exact multiple of the requested rate that lies in
    one of the valid hardware ranges, so the consumer can decimate by an
    integer factor. Out-of-range requests fall back to the default rate.

    Args:
        requested: Desired sample rate in Hz.

    Returns:
        Hardware sample rate in Hz.
    """
    rate = requested
    if not math.isfinite(rate) or rate <= 0 or rate > MAX_SAMPLE_RATE:
        logger.warning(
            "Requested rate %s Hz not within hardware range; using %d Hz",
            requested,
            DEFAULT_SAMPLE_RATE,
        )
        rate = DEFAULT_SAMPLE_RATE

    for low, _high in HARDWARE_RATE_RANGES[:-1]:
        hw_rate = _first_multiple_from(rate, low)
        if is_hardware_rate(hw_rate):
            return int(hw_rate)

    # The upper range is wider than the gap below it, so it always holds a multiple
    return int(_first_multiple_from(rate, HARDWARE_RATE_RANGES[-1][0]))


def _first_multiple_from(rate: float, low: int) -> float:
    multiple = math.ceil(low / rate)
    if multiple * rate < low:
        multiple += 1
    return multiple * rate


def usb_buffer_size(hw_rate: int) -> int:
    """USB transfer buffer size holding ~100 ms of 16-bit I/Q at ``hw_rate``.

    Rounded up to a multiple of 512 bytes, as libusb requires.
    """
    raw = hw_rate * BYTES_PER_IQ_PAIR * USB_BUFFER_SECONDS
    return USB_BLOCK_BYTES * math.ceil(raw / USB_BLOCK_BYTES)
