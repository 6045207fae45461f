from __future__ import annotations

import json
import logging
import os
from collections import deque
from pathlib import Path

from .models import LogEntry

log = logging.getLogger("community-events")

DEFAULT_CAP = 1000


class EventLog:
    """Append-only domain event log.

    Every entry goes to two renderings: ``events.log`` holds one JSON object
    per line and is never truncated, while ``events.json`` is a pretty-printed
    array of the most recent ``cap`` entries for quick inspection.
    """

    LINES_FILE = "events.log"
    RECENT_FILE = "events.json"

    def __init__(self, log_dir: str | os.PathLike[str], *, cap: int = DEFAULT_CAP) -> None:
        if cap < 1:
            raise ValueError("cap must be at least 1")
        self.log_dir = Path(log_dir)
        self.lines_path = self.log_dir / self.LINES_FILE
        self.recent_path = self.log_dir / self.RECENT_FILE
        self.cap = cap

    def initialize(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def append(self, type_: str, payload: dict[str, object] | None = None) -> LogEntry:
        """Record an event. Write failures are logged, never raised."""
        entry = LogEntry.create(type_, payload)
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with self.lines_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry.to_dict(), default=str) + "\n")
            recent = self.recent()
            recent.append(entry.to_dict())
            if len(recent) > self.cap:
                recent = recent[-self.cap :]
            self.recent_path.write_text(
                json.dumps(recent, indent=2, default=str), encoding="utf-8"
            )
        except OSError as exc:
            log.error("Failed to write event %s: %s", type_, exc)
        return entry

    def recent(self) -> list[dict[str, object]]:
        try:
            data = json.loads(self.recent_path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValueError):
            return []
        return data if isinstance(data, list) else []

    def tail(self, lines: int = 20) -> list[str]:
        if lines < 1:
            return []
        try:
            with self.lines_path.open(encoding="utf-8") as handle:
                return [line.rstrip("\n") for line in deque(handle, maxlen=lines)]
        except OSError:
            return []


__all__ = ["DEFAULT_CAP", "EventLog"]
