"""Per-device RTL-SDR controller.

Owns one rtl_tcp process and its control channel, forwards parameter
changes to it, publishes its settings replies to the registry, and turns
crashes and stalls into a remove/re-add cycle on the event bus.

Example:
    >>> controller = RTLSDRController(descriptor, Plan(rate=48_000), entry, bus)
    >>> controller.init()
    >>> await controller.wait_connected()
    >>> await controller.set_param("frequency", 166.376)
    >>> await controller.start_stop(True)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from rtlsdr_control.controller.states import (
    CancelStallCheck,
    ChannelLost,
    ChannelOpened,
    CloseChannel,
    Command,
    CompleteInit,
    ConnectChannel,
    ControllerState,
    EmitRemoved,
    Event,
    InitRequested,
    KillServer,
    PeerDied,
    ScheduleReAdd,
    ScheduleStallCheck,
    ServerExited,
    ServerReady,
    ServerSpawnFailed,
    ShutdownRequested,
    SpawnServer,
    StallReported,
    StallTimerFired,
    transition,
)
from rtlsdr_control.controller.timers import TimerSet
from rtlsdr_control.core.config import DEVICE_PATH_PREFIX, ControllerSettings
from rtlsdr_control.core.exceptions import ChannelError, CommandEncodeError, ServerSpawnError
from rtlsdr_control.core.models import DeviceDescriptor, Plan
from rtlsdr_control.core.rates import resolve_hardware_rate
from rtlsdr_control.gateway.events import (
    DataPeerDied,
    DeviceAdded,
    DeviceRemoved,
    DeviceStalled,
    EventBus,
    ParamSetFailed,
)
from rtlsdr_control.gateway.registry import DeviceEntry
from rtlsdr_control.protocol.channel import ControlChannel
from rtlsdr_control.protocol.codec import encode_command, is_known_command
from rtlsdr_control.server.supervisor import ServerSupervisor

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[..., ServerSupervisor]

_STALL_TIMER = "stall"
_READD_TIMER = "readd"


class RTLSDRController:
    """Controller for a single RTL-SDR device.

    All methods must be called from the event loop the controller runs on.
    Reactions to process, socket and timer events are decided by
    :func:`~rtlsdr_control.controller.states.transition`; this class only
    carries out the resulting commands.

    Attributes:
        descriptor: The controlled device.
        plan: Sampling plan the device was added with.
        entry: Registry entry receiving settings snapshots.
        hw_rate: Hardware sample rate derived from the plan rate.
        socket_path: Control socket of this device's server.
        state: Current lifecycle state.
    """

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        plan: Plan,
        entry: DeviceEntry,
        bus: EventBus,
        settings: ControllerSettings | None = None,
        supervisor_factory: SupervisorFactory | None = None,
    ) -> None:
        """Initialize controller.

        Args:
            descriptor: The device to control.
            plan: Sampling plan; only its rate is used here.
            entry: This device's registry entry.
            bus: Event bus shared with the device owner.
            settings: Runtime settings (defaults if None).
            supervisor_factory: Builds the process supervisor; takes the
                same keyword arguments as ``ServerSupervisor``.
        """
        self.descriptor = descriptor
        self.plan = plan
        self.entry = entry
        self.bus = bus
        self.settings = settings or ControllerSettings()

        self.hw_rate = resolve_hardware_rate(plan.rate)
        self.socket_path: Path = self.settings.socket_path_for(descriptor.usb_path)
        self.state = ControllerState.UNINITIALIZED

        self._timers = TimerSet()
        self._channel: ControlChannel | None = None
        self._init_callback: Callable[[], None] | None = None
        self._connected = asyncio.Event()
        self._recovery_cancelled = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self._spawn_generation = 0

        factory = supervisor_factory or ServerSupervisor
        self._supervisor = factory(
            program=self.settings.server_program,
            socket_path=self.socket_path,
            usb_path=descriptor.usb_path,
            hw_rate=self.hw_rate,
            on_ready=self._on_server_ready,
            on_exit=self._on_server_exit,
            on_spawn_error=self._on_spawn_error,
            ready_marker=self.settings.ready_marker,
        )

        bus.subscribe(DataPeerDied, self._on_peer_died)
        bus.subscribe(DeviceStalled, self._on_device_stalled)

    @property
    def device_path(self) -> str:
        """Address the data-plane consumer uses to reach this device."""
        return f"{DEVICE_PATH_PREFIX}{self.socket_path}"

    @property
    def is_connected(self) -> bool:
        """Check if commands can currently be sent."""
        return self.state is ControllerState.CONNECTED

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def init(self, callback: Callable[[], None] | None = None) -> None:
        """Start the server and open the control channel.

        Args:
            callback: Called once when the control channel first opens.
        """
        if self.state is not ControllerState.UNINITIALIZED:
            logger.debug("Ignoring init on port %s in state %s", self.descriptor.port, self.state.value)
            return

        self._init_callback = callback
        self._connected.clear()
        self._dispatch(InitRequested())

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Wait until the control channel has opened.

        Args:
            timeout: Maximum seconds to wait (None waits forever).

        Returns:
            True if connected, False on timeout.
        """
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def set_param(
        self,
        name: str,
        value: float,
        callback: Callable[[], None] | None = None,
    ) -> bool:
        """Send one parameter change to the server.

        Unknown names and calls made while not connected are dropped.
        Encoding and transmission failures are reported as
        ``ParamSetFailed`` on the bus rather than raised.

        Args:
            name: Parameter name (see ``protocol.codec.COMMANDS``).
            value: Value in natural units.
            callback: Called once the frame has been written.

        Returns:
            True if the frame was sent.
        """
        if not is_known_command(name):
            logger.debug("Dropping unknown parameter %s", name)
            return False

        channel = self._channel
        if self.state is not ControllerState.CONNECTED or channel is None or not channel.is_open:
            logger.debug("Dropping %s on port %s: not connected", name, self.descriptor.port)
            return False

        try:
            frame = encode_command(name, value)
            if frame is None:
                return False
            await channel.send(frame)
        except (CommandEncodeError, ChannelError, OSError) as e:
            logger.warning("Failed to set %s=%r on port %s: %s", name, value, self.descriptor.port, e)
            self.bus.emit(
                ParamSetFailed(
                    kind=self.descriptor.kind,
                    port=self.descriptor.port,
                    par=name,
                    val=value,
                    err=str(e),
                )
            )
            return False

        logger.debug("Set %s=%r on port %s", name, value, self.descriptor.port)
        if callback is not None:
            callback()
        return True

    async def start_stop(self, on: bool) -> bool:
        """Start or stop sample streaming on the data connection."""
        return await self.set_param("streaming", 1 if on else 0)

    def report_stall(self) -> None:
        """Report that sample data stopped arriving from this device."""
        logger.warning("Data stall reported on port %s", self.descriptor.port)
        self._dispatch(StallReported())

    def delete(self) -> None:
        """Kill the server and drop the channel after the data peer died.

        The controller returns to UNINITIALIZED and can be re-initialized.
        """
        logger.info("Deleting hardware on port %s", self.descriptor.port)
        self._dispatch(PeerDied())

    def shutdown(self, cancel_recovery: bool = False) -> None:
        """Stop the device for good.

        A re-add already scheduled by a reset still fires unless
        ``cancel_recovery`` is set.

        Args:
            cancel_recovery: Also cancel any pending re-add.
        """
        if cancel_recovery:
            self.cancel_recovery()

        self.bus.unsubscribe(DataPeerDied, self._on_peer_died)
        self.bus.unsubscribe(DeviceStalled, self._on_device_stalled)
        self._dispatch(ShutdownRequested())

    def cancel_recovery(self) -> bool:
        """Prevent a pending or future re-add announcement.

        Returns:
            True if a scheduled re-add was cancelled.
        """
        self._recovery_cancelled = True
        return self._timers.cancel(_READD_TIMER)

    async def wait_closed(self) -> None:
        """Wait for background tasks and the server process to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._supervisor.wait_closed()

    # -------------------------------------------------------------------------
    # State machine plumbing
    # -------------------------------------------------------------------------

    def _dispatch(self, event: Event) -> None:
        previous = self.state
        self.state, commands = transition(
            previous,
            event,
            stall_delay=self.settings.stall_delay_seconds,
            readd_delay=self.settings.readd_delay_seconds,
        )
        if self.state is not previous:
            logger.debug(
                "Port %s: %s -> %s on %s",
                self.descriptor.port,
                previous.value,
                self.state.value,
                type(event).__name__,
            )
        for command in commands:
            self._execute(command)

    def _execute(self, command: Command) -> None:
        if isinstance(command, SpawnServer):
            self._spawn_generation += 1
            self._start_task(self._spawn_server(self._spawn_generation))
        elif isinstance(command, ConnectChannel):
            self._connect_channel()
        elif isinstance(command, CloseChannel):
            self._close_channel()
        elif isinstance(command, KillServer):
            self._supervisor.kill()
        elif isinstance(command, CompleteInit):
            self._complete_init()
        elif isinstance(command, ScheduleStallCheck):
            self._timers.schedule(_STALL_TIMER, command.delay, lambda: self._dispatch(StallTimerFired()))
        elif isinstance(command, CancelStallCheck):
            self._timers.cancel(_STALL_TIMER)
        elif isinstance(command, EmitRemoved):
            logger.warning("Resetting device on port %s", self.descriptor.port)
            self.bus.emit(DeviceRemoved(self.descriptor))
        elif isinstance(command, ScheduleReAdd):
            self._schedule_readd(command.delay)

    async def _spawn_server(self, generation: int) -> None:
        if generation != self._spawn_generation:
            # superseded by a later init before it got to run
            return
        started = await self._supervisor.spawn()
        if started and self.state in (ControllerState.UNINITIALIZED, ControllerState.SHUTTING_DOWN):
            # released while the process was starting
            self._supervisor.kill()

    def _start_task(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _connect_channel(self) -> None:
        self._close_channel()

        def on_lost(reason: str) -> None:
            if channel is self._channel:
                self._dispatch(ChannelLost(reason))

        channel = ControlChannel(self.socket_path, on_settings=self._on_settings, on_lost=on_lost)
        self._channel = channel
        self._start_task(self._open_channel(channel))

    async def _open_channel(self, channel: ControlChannel) -> None:
        try:
            await channel.open()
        except ChannelError as e:
            logger.warning("Control channel on port %s failed: %s", self.descriptor.port, e)
            if channel is self._channel:
                self._dispatch(ChannelLost(str(e)))
            return

        if channel is not self._channel:
            channel.close()
            return
        if channel.is_open:
            self._dispatch(ChannelOpened())

    def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.close()

    def _complete_init(self) -> None:
        logger.info("Port %s connected (%s)", self.descriptor.port, self.device_path)
        callback, self._init_callback = self._init_callback, None
        self._connected.set()
        if callback is not None:
            callback()

    def _schedule_readd(self, delay: float) -> None:
        if self._recovery_cancelled:
            logger.info("Recovery cancelled on port %s", self.descriptor.port)
            return

        descriptor = self.descriptor.clone()

        def readd() -> None:
            logger.info("Re-adding device on port %s", descriptor.port)
            self.bus.emit(DeviceAdded(descriptor))

        self._timers.schedule(_READD_TIMER, delay, readd)

    # -------------------------------------------------------------------------
    # Callbacks from the supervisor, channel and bus
    # -------------------------------------------------------------------------

    def _on_server_ready(self) -> None:
        self._dispatch(ServerReady())

    def _on_server_exit(self, returncode: int | None, deliberate: bool) -> None:
        self._dispatch(ServerExited(returncode=returncode, deliberate=deliberate))

    def _on_spawn_error(self, error: ServerSpawnError) -> None:
        self._dispatch(ServerSpawnFailed(error=str(error)))

    def _on_settings(self, snapshot: dict[str, Any]) -> None:
        self.entry.update_settings(snapshot)

    def _on_peer_died(self, event: DataPeerDied) -> None:
        self.delete()

    def _on_device_stalled(self, event: DeviceStalled) -> None:
        if event.descriptor.port == self.descriptor.port:
            self.report_stall()
