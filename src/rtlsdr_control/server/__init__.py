"""Sampling server process management."""

from __future__ import annotations

from rtlsdr_control.server.supervisor import ServerSupervisor, check_server_available

__all__ = ["ServerSupervisor", "check_server_available"]
