"""Tests for the controller transition function."""

from __future__ import annotations

import pytest

from rtlsdr_control.controller.states import (
    ACTIVE_STATES,
    CancelStallCheck,
    ChannelLost,
    ChannelOpened,
    CloseChannel,
    CompleteInit,
    ConnectChannel,
    ControllerState,
    EmitRemoved,
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

S = ControllerState
RESET = [CancelStallCheck(), CloseChannel(), EmitRemoved(), ScheduleReAdd(5.0)]
ALL_EVENTS = [
    InitRequested(),
    ServerReady(),
    ServerSpawnFailed("boom"),
    ServerExited(1, False),
    ServerExited(-9, True),
    ChannelOpened(),
    ChannelLost("end of stream"),
    StallTimerFired(),
    StallReported(),
    PeerDied(),
    ShutdownRequested(),
]


class TestStartup:
    """Tests for the happy path up to CONNECTED."""

    def test_init_spawns(self) -> None:
        """Initialization starts the server."""
        assert transition(S.UNINITIALIZED, InitRequested()) == (S.STARTING, [SpawnServer()])

    def test_ready_connects(self) -> None:
        """Readiness opens the control channel."""
        assert transition(S.STARTING, ServerReady()) == (S.AWAITING_CHANNEL, [ConnectChannel()])

    def test_open_completes_init(self) -> None:
        """Connecting runs the init callback."""
        assert transition(S.AWAITING_CHANNEL, ChannelOpened()) == (S.CONNECTED, [CompleteInit()])

    def test_spawn_failure_returns_to_uninitialized(self) -> None:
        """A failed spawn is not retried."""
        assert transition(S.STARTING, ServerSpawnFailed("ENOENT")) == (S.UNINITIALIZED, [])

    @pytest.mark.parametrize("state", [s for s in S if s is not S.UNINITIALIZED])
    def test_init_only_from_uninitialized(self, state: ControllerState) -> None:
        """Repeated init requests are ignored."""
        assert transition(state, InitRequested()) == (state, [])

    def test_late_ready_ignored(self) -> None:
        """A second readiness notice does not reconnect."""
        assert transition(S.CONNECTED, ServerReady()) == (S.CONNECTED, [])


class TestFaults:
    """Tests for stall and crash handling."""

    @pytest.mark.parametrize("state", [S.AWAITING_CHANNEL, S.CONNECTED])
    def test_channel_loss_schedules_stall_check(self, state: ControllerState) -> None:
        """Losing the channel waits before resetting."""
        assert transition(state, ChannelLost("end of stream")) == (
            S.STALLED,
            [CloseChannel(), ScheduleStallCheck(5.001)],
        )

    def test_stall_timer_resets(self) -> None:
        """The delayed stall check starts the reset."""
        assert transition(S.STALLED, StallTimerFired()) == (S.RESETTING, RESET)

    @pytest.mark.parametrize("state", sorted(ACTIVE_STATES, key=lambda s: s.value))
    def test_unexpected_exit_resets_immediately(self, state: ControllerState) -> None:
        """A crash resets without waiting."""
        assert transition(state, ServerExited(1, deliberate=False)) == (S.RESETTING, RESET)

    @pytest.mark.parametrize("state", list(S))
    def test_deliberate_exit_never_resets(self, state: ControllerState) -> None:
        """Exits caused by kill() are ignored."""
        assert transition(state, ServerExited(-9, deliberate=True)) == (state, [])

    @pytest.mark.parametrize("state", sorted(ACTIVE_STATES, key=lambda s: s.value))
    def test_reported_stall_resets(self, state: ControllerState) -> None:
        """An external stall report resets immediately."""
        assert transition(state, StallReported()) == (S.RESETTING, RESET)

    def test_custom_delays(self) -> None:
        """Delays are passed through to the scheduling commands."""
        _, commands = transition(S.CONNECTED, ChannelLost(), stall_delay=0.5)
        assert ScheduleStallCheck(0.5) in commands

        _, commands = transition(S.STALLED, StallTimerFired(), readd_delay=0.25)
        assert commands[-1] == ScheduleReAdd(0.25)

    def test_stall_timer_outside_stalled_ignored(self) -> None:
        """A stale stall timer has no effect."""
        assert transition(S.CONNECTED, StallTimerFired()) == (S.CONNECTED, [])
        assert transition(S.UNINITIALIZED, StallTimerFired()) == (S.UNINITIALIZED, [])

    def test_reset_order(self) -> None:
        """Removal is announced before the re-add is scheduled."""
        _, commands = transition(S.CONNECTED, StallReported())
        assert commands.index(EmitRemoved()) < commands.index(ScheduleReAdd(5.0))


class TestReentrancy:
    """Tests for duplicate faults during a reset."""

    @pytest.mark.parametrize("event", ALL_EVENTS[:-2], ids=lambda e: type(e).__name__)
    def test_resetting_discards_faults(self, event: object) -> None:
        """Only one reset cycle runs at a time."""
        state, commands = transition(S.RESETTING, event)  # type: ignore[arg-type]

        assert state is S.RESETTING
        assert EmitRemoved() not in commands
        assert not any(isinstance(c, ScheduleReAdd) for c in commands)

    def test_only_one_reset_per_cycle(self) -> None:
        """A crash followed by a stall report emits one removal."""
        state, first = transition(S.CONNECTED, ServerExited(1, False))
        state, second = transition(state, StallReported())
        state, third = transition(state, ChannelLost())

        assert first.count(EmitRemoved()) == 1
        assert second == [] and third == []

    def test_stray_channel_closed(self) -> None:
        """A channel that opens after a fault is closed again."""
        assert transition(S.RESETTING, ChannelOpened()) == (S.RESETTING, [CloseChannel()])
        assert transition(S.STALLED, ChannelOpened()) == (S.STALLED, [CloseChannel()])


class TestPeerDied:
    """Tests for the data peer death reaction."""

    @pytest.mark.parametrize("state", list(ACTIVE_STATES) + [S.UNINITIALIZED])
    def test_kills_and_uninitializes(self, state: ControllerState) -> None:
        """Hardware is released and the controller awaits a new init."""
        assert transition(state, PeerDied()) == (
            S.UNINITIALIZED,
            [CancelStallCheck(), CloseChannel(), KillServer()],
        )

    def test_resetting_stays_resetting(self) -> None:
        """A pending reset is not interrupted."""
        state, commands = transition(S.RESETTING, PeerDied())
        assert state is S.RESETTING
        assert KillServer() in commands

    def test_no_removal_announced(self) -> None:
        """Re-initialization is driven by the owner, not by a reset."""
        _, commands = transition(S.CONNECTED, PeerDied())
        assert EmitRemoved() not in commands


class TestShutdown:
    """Tests for the terminal SHUTTING_DOWN state."""

    @pytest.mark.parametrize("state", [s for s in S if s is not S.SHUTTING_DOWN])
    def test_shutdown_from_any_state(self, state: ControllerState) -> None:
        """Shutdown kills the server and drops the channel."""
        assert transition(state, ShutdownRequested()) == (
            S.SHUTTING_DOWN,
            [CancelStallCheck(), CloseChannel(), KillServer()],
        )

    @pytest.mark.parametrize("event", ALL_EVENTS, ids=lambda e: type(e).__name__)
    def test_terminal(self, event: object) -> None:
        """Nothing leaves SHUTTING_DOWN or triggers a reset."""
        state, commands = transition(S.SHUTTING_DOWN, event)  # type: ignore[arg-type]

        assert state is S.SHUTTING_DOWN
        if isinstance(event, ChannelOpened):
            assert commands == [CloseChannel()]
        else:
            assert commands == []
