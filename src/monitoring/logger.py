# JSONL sink for monitoring events
"""
Append every MonitoringEvent published on a bus to a JSON-lines file.

The file is what `kitpvp-monitor` (monitoring.tools) reads back. One
object per line, UTF-8, flushed after each event so a crashed run still
leaves a readable log.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .bus import EventBus
from .events import MonitoringEvent

log = logging.getLogger(__name__)


class JsonFileLogger:
    """Bus subscriber writing one JSON line per event; close() detaches it."""

    def __init__(self, path: Path, bus: EventBus) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.written = 0
        self._bus = bus
        self._file = path.open("a", encoding="utf-8")
        bus.subscribe(self._write)

    def _write(self, event: MonitoringEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
        try:
            self._file.write(line + "\n")
            self._file.flush()
        except (OSError, ValueError):
            log.warning("Dropping %s for %s; cannot write %s", event.event_type.name, event.correlation_id, self.path)
            return
        self.written += 1

    def close(self) -> None:
        self._bus.unsubscribe(self._write)
        if not self._file.closed:
            self._file.close()
