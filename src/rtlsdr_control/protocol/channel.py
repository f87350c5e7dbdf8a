"""Control connection to a running rtl_tcp server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from rtlsdr_control.core.exceptions import ChannelError
from rtlsdr_control.protocol.codec import ReplyDecoder

logger = logging.getLogger(__name__)

SettingsHandler = Callable[[dict[str, Any]], None]
LostHandler = Callable[[str], None]


class ControlChannel:
    """Unix-domain stream connection carrying commands and settings replies.

    A channel is used once: after it is lost or closed, a new one must be
    created. ``on_lost`` fires at most once, and never after ``close()``.

    Example:
        >>> channel = ControlChannel(sock_path, on_settings=print, on_lost=print)
        >>> await channel.open()
        >>> await channel.send(encode_command("frequency", 166.376))
    """

    def __init__(
        self,
        path: Path | str,
        on_settings: SettingsHandler,
        on_lost: LostHandler,
        read_size: int = 4096,
    ) -> None:
        """Initialize control channel.

        Args:
            path: Filesystem path of the server's control socket.
            on_settings: Called with each decoded settings snapshot.
            on_lost: Called with a reason when the server side goes away.
            read_size: Maximum bytes per socket read.
        """
        self.path = Path(path)
        self.read_size = read_size
        self._on_settings = on_settings
        self._on_lost = on_lost
        self._decoder = ReplyDecoder()
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        """Check if commands can be sent."""
        return self._writer is not None and not self._closed

    async def open(self) -> None:
        """Connect to the server's control socket.

        Raises:
            ChannelError: If the connection cannot be established.
        """
        if self._closed:
            raise ChannelError("Control channel already closed")

        try:
            reader, writer = await asyncio.open_unix_connection(str(self.path))
        except OSError as e:
            raise ChannelError(f"Failed to connect to {self.path}", str(e)) from e

        if self._closed:
            # closed while connecting
            writer.close()
            return

        self._reader, self._writer = reader, writer
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.debug("Control channel connected: %s", self.path)

    async def send(self, frame: bytes) -> None:
        """Write a command frame and wait until it is flushed.

        Raises:
            ChannelError: If the channel is not open.
            OSError: If the write fails.
        """
        if not self.is_open or self._writer is None:
            raise ChannelError("Control channel is not open")
        self._writer.write(frame)
        await self._writer.drain()

    def close(self) -> None:
        """Tear down the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        task = self._reader_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self._reader_task = None

        if self._writer is not None:
            self._writer.close()
            self._writer = None
        self._reader = None

    async def _read_loop(self) -> None:
        reader = self._reader
        if reader is None:
            return

        reason = "end of stream"
        try:
            while True:
                data = await reader.read(self.read_size)
                if not data:
                    break
                for snapshot in self._decoder.feed(data):
                    try:
                        self._on_settings(snapshot)
                    except Exception as e:
                        logger.warning("Settings handler failed on %s: %s", self.path, e, exc_info=True)
        except OSError as e:
            reason = f"read error: {e}"

        if self._closed:
            return
        logger.warning("Control channel lost (%s): %s", reason, self.path)
        self.close()
        self._on_lost(reason)
