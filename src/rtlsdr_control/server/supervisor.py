"""rtl_tcp subprocess supervision.

Launches the sampling server for one device, watches its stdout for the
"Listening" banner, logs its stderr, and reports its exit.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path

from rtlsdr_control.core.config import READY_MARKER
from rtlsdr_control.core.exceptions import ServerSpawnError
from rtlsdr_control.core.rates import usb_buffer_size

logger = logging.getLogger(__name__)

ReadyHandler = Callable[[], None]
ExitHandler = Callable[[int | None, bool], None]
SpawnErrorHandler = Callable[[ServerSpawnError], None]


def check_server_available(program: str) -> bool:
    """Check if the sampling server binary can be executed.

    Args:
        program: Absolute path or name looked up in PATH.

    Returns:
        True if the program is found and executable.
    """
    if os.sep in program:
        return os.access(program, os.X_OK)
    return shutil.which(program) is not None


class ServerSupervisor:
    """Owner of the rtl_tcp process for one device.

    Each ``spawn()`` starts a fresh process; ``kill()`` marks that process as
    deliberately terminated so its exit is reported with ``deliberate=True``.
    Spawns are serialized, and a process still alive when the next spawn
    starts is killed first. Only the current process reports readiness and
    exit.

    Attributes:
        program: Path to the rtl_tcp executable.
        socket_path: Control socket the server listens on.
        usb_path: USB bus:device path of the tuner.
        hw_rate: Hardware sample rate in Hz.
    """

    def __init__(
        self,
        program: str,
        socket_path: Path | str,
        usb_path: str,
        hw_rate: int,
        on_ready: ReadyHandler,
        on_exit: ExitHandler,
        on_spawn_error: SpawnErrorHandler | None = None,
        ready_marker: str = READY_MARKER,
    ) -> None:
        """Initialize supervisor.

        Args:
            program: Path to the rtl_tcp executable.
            socket_path: Control socket path passed to the server.
            usb_path: USB bus:device path of the tuner.
            hw_rate: Hardware sample rate in Hz.
            on_ready: Called once per process when it starts listening.
            on_exit: Called with (returncode, deliberate) when a process ends.
            on_spawn_error: Called when the process cannot be started.
            ready_marker: stdout text announcing readiness.
        """
        self.program = program
        self.socket_path = Path(socket_path)
        self.usb_path = usb_path
        self.hw_rate = hw_rate
        self.ready_marker = ready_marker
        self._on_ready = on_ready
        self._on_exit = on_exit
        self._on_spawn_error = on_spawn_error

        self._process: asyncio.subprocess.Process | None = None
        self._killed: set[int] = set()
        self._tasks: list[asyncio.Task[None]] = []
        self._spawn_lock = asyncio.Lock()

    @property
    def pid(self) -> int | None:
        """PID of the current server process, if any."""
        return self._process.pid if self._process is not None else None

    def is_running(self) -> bool:
        """Check if a server process is currently alive."""
        return self._process is not None and self._process.returncode is None

    def _build_command(self) -> list[str]:
        """Build rtl_tcp command line arguments.

        Returns:
            List of command arguments.
        """
        return [
            self.program,
            "-p",
            str(self.socket_path),
            "-d",
            self.usb_path,
            "-s",
            str(self.hw_rate),
            "-B",
            str(usb_buffer_size(self.hw_rate)),
        ]

    def _remove_stale_socket(self) -> None:
        try:
            self.socket_path.unlink()
            logger.debug("Removed stale control socket %s", self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove control socket %s: %s", self.socket_path, e)

    async def spawn(self) -> bool:
        """Start a new rtl_tcp process.

        Spawn failures are logged and reported through ``on_spawn_error``;
        they are not retried here. A previous process that is still alive is
        killed and reaped before the new one starts.

        Returns:
            True if the process was started.
        """
        async with self._spawn_lock:
            previous = self._process
            if previous is not None and previous.returncode is None:
                logger.warning("Replacing running rtl_tcp (PID: %d)", previous.pid)
                self.kill()
                self._process = None
                await previous.wait()
            return await self._start_process()

    async def _start_process(self) -> bool:
        self._remove_stale_socket()

        cmd = self._build_command()
        logger.info("Starting rtl_tcp: %s", " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            error = ServerSpawnError(self.program, str(e))
            logger.error("%s", error)
            if self._on_spawn_error is not None:
                self._on_spawn_error(error)
            return False

        self._process = process
        logger.info("rtl_tcp started (PID: %d)", process.pid)

        self._tasks = [task for task in self._tasks if not task.done()] + [
            asyncio.create_task(self._watch_stdout(process)),
            asyncio.create_task(self._watch_stderr(process)),
            asyncio.create_task(self._watch_exit(process)),
        ]
        return True

    def kill(self) -> bool:
        """Forcibly terminate the current process.

        Returns:
            True if a live process was signalled.
        """
        process = self._process
        if process is None or process.returncode is not None:
            return False

        self._killed.add(process.pid)
        logger.info("Killing rtl_tcp (PID: %d)", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            pass
        return True

    async def wait_closed(self) -> None:
        """Wait until the current process and its pipe watchers have finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _watch_stdout(self, process: asyncio.subprocess.Process) -> None:
        stdout = process.stdout
        if stdout is None:
            return

        marker = self.ready_marker
        keep = len(marker) - 1
        tail = ""
        ready = False
        while True:
            chunk = await stdout.read(1024)
            if not chunk:
                break
            if ready:
                # keep the pipe drained
                continue

            text = tail + chunk.decode("utf-8", errors="replace")
            if marker in text:
                ready = True
                if process is self._process:
                    logger.info("rtl_tcp listening on %s", self.socket_path)
                    self._on_ready()
                continue
            tail = text[-keep:] if keep > 0 else ""

    async def _watch_stderr(self, process: asyncio.subprocess.Process) -> None:
        stderr = process.stderr
        if stderr is None:
            return

        while True:
            line = await stderr.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.warning("rtl_tcp: %s", text)

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        deliberate = process.pid in self._killed
        self._killed.discard(process.pid)
        if process is not self._process:
            logger.info("Replaced rtl_tcp (PID: %d) exited with code %s", process.pid, returncode)
            return
        self._process = None

        if deliberate:
            logger.info("rtl_tcp (PID: %d) stopped", process.pid)
        else:
            logger.warning("rtl_tcp (PID: %d) died with code %s", process.pid, returncode)
        self._on_exit(returncode, deliberate)
