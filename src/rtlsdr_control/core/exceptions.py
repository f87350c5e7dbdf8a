"""Custom exception hierarchy for RTL-SDR control operations."""

from __future__ import annotations


class SDRError(Exception):
    """Base exception for all SDR-related errors."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ServerError(SDRError):
    """Error from the external sampling server process."""

    pass


class ServerSpawnError(ServerError):
    """The sampling server could not be started."""

    def __init__(self, program: str, details: str | None = None) -> None:
        self.program = program
        super().__init__(f"Failed to start {program}", details)


class ProtocolError(SDRError):
    """Error on the control-socket protocol."""

    pass


class CommandEncodeError(ProtocolError):
    """A parameter value cannot be packed into a command frame."""

    def __init__(self, name: str, value: object, details: str | None = None) -> None:
        self.name = name
        self.value = value
        super().__init__(f"Cannot encode {name}={value!r}", details)


class ChannelError(ProtocolError):
    """The control channel is unusable."""

    pass
