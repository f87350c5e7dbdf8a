"""Event journal for device lifecycle auditing.

Writes every bus event as one JSON object per line so removals, re-adds
and parameter failures can be reviewed after the fact.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from rtlsdr_control.gateway.events import DeviceEvent, EventBus

logger = logging.getLogger(__name__)


class EventJournal:
    """JSON Lines journal of device events."""

    def __init__(
        self,
        log_path: str | Path = "rtlsdr-events.jsonl",
        enabled: bool = True,
    ) -> None:
        """Initialize event journal.

        Args:
            log_path: Path to the journal file.
            enabled: Whether events are written.
        """
        self.log_path = Path(log_path)
        self.enabled = enabled

        if self.enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def attach(self, bus: EventBus) -> None:
        """Record every event emitted on ``bus``."""
        bus.subscribe_all(self.record)

    def record(self, event: DeviceEvent) -> dict[str, Any]:
        """Append one event to the journal.

        Args:
            event: The event to record.

        Returns:
            The serialized entry.
        """
        entry = event.to_dict()

        if self.enabled:
            try:
                with open(self.log_path, "a") as f:
                    f.write(json.dumps(entry, default=str) + "\n")
            except OSError as e:
                logger.warning("Failed to write event journal: %s", e)

        return entry

    def get_entries(self, limit: int = 100) -> list[dict[str, Any]]:
        """Read recent journal entries.

        Args:
            limit: Maximum number of entries to return.

        Returns:
            List of entries (most recent first).
        """
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path) as f:
            for line in f:
                try:
                    entries.append(json.loads(line.strip()))
                except json.JSONDecodeError:
                    continue

        return entries[-limit:][::-1]
