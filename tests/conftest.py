"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import json
import shutil
import tempfile
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from rtlsdr_control.core.config import COMMAND_FRAME_BYTES, REPLY_PREAMBLE_BYTES, ControllerSettings
from rtlsdr_control.core.exceptions import ServerSpawnError
from rtlsdr_control.core.models import DeviceDescriptor, Plan
from rtlsdr_control.gateway.events import EventBus
from rtlsdr_control.gateway.registry import DeviceRegistry
from rtlsdr_control.protocol.codec import COMMANDS, decode_command

# First name per opcode; IF stages share opcode 6
OPCODE_NAMES: dict[int, str] = {}
for _name, _opcode in COMMANDS.items():
    OPCODE_NAMES.setdefault(_opcode, _name)


class MockSupervisor:
    """Mock rtl_tcp supervisor for testing without a server binary."""

    def __init__(
        self,
        program: str,
        socket_path: Path | str,
        usb_path: str,
        hw_rate: int,
        on_ready: Callable[[], None],
        on_exit: Callable[[int | None, bool], None],
        on_spawn_error: Callable[[ServerSpawnError], None] | None = None,
        ready_marker: str = "Listening",
    ) -> None:
        self.program = program
        self.socket_path = Path(socket_path)
        self.usb_path = usb_path
        self.hw_rate = hw_rate
        self.ready_marker = ready_marker
        self.on_ready = on_ready
        self.on_exit = on_exit
        self.on_spawn_error = on_spawn_error

        self.fail_spawn = False
        self.auto_ready = True
        self.running = False
        self.spawn_count = 0
        self.kill_count = 0

    @property
    def pid(self) -> int | None:
        return 4242 if self.running else None

    def is_running(self) -> bool:
        return self.running

    async def spawn(self) -> bool:
        self.spawn_count += 1
        if self.fail_spawn:
            if self.on_spawn_error is not None:
                self.on_spawn_error(ServerSpawnError(self.program, "No such file or directory"))
            return False
        self.running = True
        if self.auto_ready:
            self.on_ready()
        return True

    def kill(self) -> bool:
        if not self.running:
            return False
        self.running = False
        self.kill_count += 1
        self.on_exit(-9, True)
        return True

    def crash(self, returncode: int = 1) -> None:
        """Simulate the server dying on its own."""
        self.running = False
        self.on_exit(returncode, False)

    async def wait_closed(self) -> None:
        return None


class FakeRtlTcp:
    """In-process stand-in for rtl_tcp's control socket.

    Sends the info header on connect and answers every command frame with a
    JSON line holding all current settings in wire units.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.frames: list[bytes] = []
        self.settings: dict[str, Any] = {"frequency": 100_000_000, "tuner_gain": 0, "streaming": 0}
        self.connections = 0
        self._server: asyncio.AbstractServer | None = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> None:
        self._server = await asyncio.start_unix_server(self._handle, path=str(self.path))

    async def close(self) -> None:
        self.drop_clients()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    def drop_clients(self) -> None:
        """Close every client connection from the server side."""
        for writer in self._writers:
            writer.close()
        self._writers.clear()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.append(writer)
        writer.write(b"RTL0" + bytes(REPLY_PREAMBLE_BYTES - 4))
        try:
            while True:
                frame = await reader.readexactly(COMMAND_FRAME_BYTES)
                self.frames.append(frame)
                opcode, value = decode_command(frame)
                self.settings[OPCODE_NAMES.get(opcode, str(opcode))] = value
                writer.write(json.dumps(self.settings).encode() + b"\n")
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def socket_dir() -> Iterator[Path]:
    """Short temporary directory for Unix sockets (path length is limited)."""
    path = Path(tempfile.mkdtemp(prefix="rtlsdr-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def descriptor() -> DeviceDescriptor:
    """Device on hub port 3, USB path 1:4."""
    return DeviceDescriptor(port="3", usb_path="1:4")


@pytest.fixture
def plan() -> Plan:
    """Default plan at 48 kHz."""
    return Plan(rate=48_000)


@pytest.fixture
def settings(socket_dir: Path) -> ControllerSettings:
    """Controller settings with short recovery delays."""
    return ControllerSettings(
        server_program="/usr/bin/rtl_tcp",
        socket_dir=socket_dir,
        stall_delay_seconds=0.05,
        readd_delay_seconds=0.05,
    )


@pytest.fixture
def bus() -> EventBus:
    """Fresh event bus."""
    return EventBus()


@pytest.fixture
def registry() -> DeviceRegistry:
    """Empty device registry."""
    return DeviceRegistry()


@pytest.fixture
def supervisors() -> list[MockSupervisor]:
    """Every MockSupervisor created through ``supervisor_factory``."""
    return []


@pytest.fixture
def supervisor_factory(supervisors: list[MockSupervisor]) -> Callable[..., MockSupervisor]:
    """Factory creating MockSupervisor instances."""

    def factory(**kwargs: Any) -> MockSupervisor:
        supervisor = MockSupervisor(**kwargs)
        supervisors.append(supervisor)
        return supervisor

    return factory


@pytest_asyncio.fixture
async def rtl_tcp(settings: ControllerSettings, descriptor: DeviceDescriptor) -> AsyncIterator[FakeRtlTcp]:
    """Fake rtl_tcp listening on the descriptor's control socket."""
    server = FakeRtlTcp(settings.socket_path_for(descriptor.usb_path))
    await server.start()
    yield server
    await server.close()
