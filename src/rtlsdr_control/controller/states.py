"""Controller state machine.

The transition function is pure: it maps (state, event) to the next state
and the side effects to perform, leaving the effects to the caller.

State Machine:
    UNINITIALIZED -> STARTING -> AWAITING_CHANNEL -> CONNECTED
                        |              |               |
                        |              +-> STALLED <---+
                        |                     |
                        +-------------> RESETTING

    Any state -> SHUTTING_DOWN (terminal)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from rtlsdr_control.core.config import READD_DELAY_SECONDS, STALL_DELAY_SECONDS


class ControllerState(str, Enum):
    """Lifecycle states of a device controller."""

    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    AWAITING_CHANNEL = "awaiting_channel"
    CONNECTED = "connected"
    STALLED = "stalled"
    RESETTING = "resetting"
    SHUTTING_DOWN = "shutting_down"


# States in which a server process may be running and faults matter
ACTIVE_STATES: frozenset[ControllerState] = frozenset(
    {
        ControllerState.STARTING,
        ControllerState.AWAITING_CHANNEL,
        ControllerState.CONNECTED,
        ControllerState.STALLED,
    }
)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class InitRequested:
    """Owner asked for the device to be brought up."""


@dataclass(frozen=True)
class ServerReady:
    """Server announced it is listening on the control socket."""


@dataclass(frozen=True)
class ServerSpawnFailed:
    """Server process could not be started."""

    error: str = ""


@dataclass(frozen=True)
class ServerExited:
    """Server process ended."""

    returncode: int | None = None
    deliberate: bool = False


@dataclass(frozen=True)
class ChannelOpened:
    """Control channel connected."""


@dataclass(frozen=True)
class ChannelLost:
    """Control channel failed, ended or closed from the server side."""

    reason: str = ""


@dataclass(frozen=True)
class StallTimerFired:
    """Delay after a channel loss has elapsed."""


@dataclass(frozen=True)
class StallReported:
    """Owner detected that sample data stopped flowing."""


@dataclass(frozen=True)
class PeerDied:
    """The data-plane consumer holding the other server connection died."""


@dataclass(frozen=True)
class ShutdownRequested:
    """Owner is removing the device."""


Event = (
    InitRequested
    | ServerReady
    | ServerSpawnFailed
    | ServerExited
    | ChannelOpened
    | ChannelLost
    | StallTimerFired
    | StallReported
    | PeerDied
    | ShutdownRequested
)


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class SpawnServer:
    """Start a fresh server process."""


@dataclass(frozen=True)
class ConnectChannel:
    """Open the control channel."""


@dataclass(frozen=True)
class CloseChannel:
    """Destroy the control channel, if any."""


@dataclass(frozen=True)
class KillServer:
    """Deliberately kill the server process, if any."""


@dataclass(frozen=True)
class CompleteInit:
    """Run the pending initialization callback."""


@dataclass(frozen=True)
class ScheduleStallCheck:
    """Fire StallTimerFired after ``delay`` seconds."""

    delay: float


@dataclass(frozen=True)
class CancelStallCheck:
    """Cancel a pending stall check."""


@dataclass(frozen=True)
class EmitRemoved:
    """Announce the device as removed."""


@dataclass(frozen=True)
class ScheduleReAdd:
    """Announce a copy of the device as added after ``delay`` seconds."""

    delay: float


Command = (
    SpawnServer
    | ConnectChannel
    | CloseChannel
    | KillServer
    | CompleteInit
    | ScheduleStallCheck
    | CancelStallCheck
    | EmitRemoved
    | ScheduleReAdd
)


def _reset(readd_delay: float) -> list[Command]:
    return [CancelStallCheck(), CloseChannel(), EmitRemoved(), ScheduleReAdd(readd_delay)]


def transition(
    state: ControllerState,
    event: Event,
    stall_delay: float = STALL_DELAY_SECONDS,
    readd_delay: float = READD_DELAY_SECONDS,
) -> tuple[ControllerState, list[Command]]:
    """Compute the reaction of a controller to an event.

    Events that do not apply to the current state leave it unchanged and
    produce no commands, which makes late or duplicate events harmless.

    Args:
        state: Current controller state.
        event: Incoming event.
        stall_delay: Seconds between a channel loss and the reset.
        readd_delay: Seconds between the removal and re-add announcements.

    Returns:
        Tuple of (next state, commands to execute in order).
    """
    if state is ControllerState.SHUTTING_DOWN:
        if isinstance(event, ChannelOpened):
            return state, [CloseChannel()]
        return state, []

    if isinstance(event, ShutdownRequested):
        return ControllerState.SHUTTING_DOWN, [CancelStallCheck(), CloseChannel(), KillServer()]

    if isinstance(event, PeerDied):
        next_state = (
            state if state is ControllerState.RESETTING else ControllerState.UNINITIALIZED
        )
        return next_state, [CancelStallCheck(), CloseChannel(), KillServer()]

    if isinstance(event, InitRequested):
        if state is ControllerState.UNINITIALIZED:
            return ControllerState.STARTING, [SpawnServer()]
        return state, []

    if isinstance(event, ServerReady):
        if state is ControllerState.STARTING:
            return ControllerState.AWAITING_CHANNEL, [ConnectChannel()]
        return state, []

    if isinstance(event, ServerSpawnFailed):
        if state is ControllerState.STARTING:
            return ControllerState.UNINITIALIZED, []
        return state, []

    if isinstance(event, ChannelOpened):
        if state is ControllerState.AWAITING_CHANNEL:
            return ControllerState.CONNECTED, [CompleteInit()]
        return state, [CloseChannel()]

    if isinstance(event, ChannelLost):
        if state in (ControllerState.AWAITING_CHANNEL, ControllerState.CONNECTED):
            return ControllerState.STALLED, [CloseChannel(), ScheduleStallCheck(stall_delay)]
        return state, []

    if isinstance(event, StallTimerFired):
        if state is ControllerState.STALLED:
            return ControllerState.RESETTING, _reset(readd_delay)
        return state, []

    if isinstance(event, ServerExited):
        if not event.deliberate and state in ACTIVE_STATES:
            return ControllerState.RESETTING, _reset(readd_delay)
        return state, []

    if isinstance(event, StallReported):
        if state in ACTIVE_STATES:
            return ControllerState.RESETTING, _reset(readd_delay)
        return state, []

    return state, []
