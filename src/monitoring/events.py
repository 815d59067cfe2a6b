# path: src/monitoring/events.py
"""
Event schemas for bot monitoring.

This module defines:
- EventType enum
- MonitoringEvent (structured session/combat events)

All events are JSON-serializable via `.to_dict()` and are intended
for use with monitoring.bus.EventBus and monitoring.logger.JsonFileLogger.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum, auto
from typing import Any, Dict, Optional


# ============================================================
# Event Types
# ============================================================

class EventType(Enum):
    """Typed monitoring events emitted by bot sessions."""

    # Connection lifecycle
    SESSION_CONNECTED = auto()
    SESSION_KICKED = auto()
    SESSION_ENDED = auto()
    SESSION_ERROR = auto()

    # Engagement scheduler
    ENGAGEMENT_STARTED = auto()
    ENGAGEMENT_STOPPED = auto()

    # Healing state machine
    HEAL_STARTED = auto()

    # Gear optimizer
    GEAR_EQUIPPED = auto()

    # Rejected action primitives (attack, equip, look, ...)
    ACTION_FAILED = auto()


# ============================================================
# Monitoring Event Structure
# ============================================================

@dataclass
class MonitoringEvent:
    """
    Runtime event emitted by a bot session or one of its components.

    All fields must be JSON-safe.
    """

    ts: float                   # UNIX timestamp (seconds)
    module: str                 # Source module string ("combat.targeting", ...)
    event_type: EventType       # Enum describing the event class
    message: str                # Short human-readable description
    payload: Dict[str, Any]     # Structured data (target, item, slot, ...)
    correlation_id: Optional[str] = None  # Bot username the event belongs to

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dict for loggers."""
        data = asdict(self)
        data["event_type"] = self.event_type.name  # store name, not enum
        return data
