"""Named, cancellable delayed callbacks owned by one controller."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class TimerSet:
    """Delayed callbacks keyed by name.

    Scheduling a key that is already pending replaces it, so each key has at
    most one pending callback.

    Example:
        >>> timers = TimerSet()
        >>> timers.schedule("stall", 5.001, on_stall)
        >>> timers.cancel("stall")
        True
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` after ``delay`` seconds unless cancelled."""
        self.cancel(key)

        def fire() -> None:
            self._handles.pop(key, None)
            callback()

        self._handles[key] = self._get_loop().call_later(delay, fire)
        logger.debug("Scheduled %s in %.3fs", key, delay)

    def cancel(self, key: str) -> bool:
        """Cancel the pending callback for ``key``.

        Returns:
            True if a pending callback was cancelled.
        """
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        logger.debug("Cancelled %s", key)
        return True

    def cancel_all(self) -> None:
        """Cancel every pending callback."""
        for key in list(self._handles):
            self.cancel(key)

    def pending(self, key: str) -> bool:
        """Check if a callback for ``key`` is waiting to run."""
        return key in self._handles
