# path: src/monitoring/integration.py
"""
Integration helpers for bot monitoring.

Convenience functions for emitting well-structured MonitoringEvents from
bot sessions and their combat components:

- Session lifecycle (connected, kicked, ended, error)
- Engagement scheduler (engagement started / stopped)
- Healing state machine (heal started)
- Gear optimizer (item equipped)
- Failed action primitives

Each helper builds one MonitoringEvent with a fixed payload shape and
publishes it. The bot's username is both the correlation id and
`payload["username"]`, so a bus subscriber can follow a single bot.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from .bus import EventBus
from .events import EventType, MonitoringEvent


JsonDict = Dict[str, Any]


def _publish(
    bus: EventBus,
    module: str,
    event_type: EventType,
    username: str,
    message: str,
    **fields: Any,
) -> None:
    bus.publish(
        MonitoringEvent(
            ts=time.time(),
            module=module,
            event_type=event_type,
            message=message,
            payload={"username": username, **fields},
            correlation_id=username,
        )
    )


# ============================================================
# Session lifecycle
# ============================================================

def emit_session_connected(bus: EventBus, username: str, server: str, preset: str) -> None:
    _publish(
        bus, "combat.session", EventType.SESSION_CONNECTED, username,
        f"Connected to {server}", server=server, preset=preset,
    )


def emit_session_kicked(bus: EventBus, username: str, reason: str) -> None:
    _publish(bus, "combat.session", EventType.SESSION_KICKED, username, f"Kicked: {reason}", reason=reason)


def emit_session_ended(bus: EventBus, username: str, reason: Optional[str]) -> None:
    _publish(bus, "combat.session", EventType.SESSION_ENDED, username, "Disconnected from server", reason=reason)


def emit_session_error(bus: EventBus, username: str, message: str) -> None:
    _publish(bus, "combat.session", EventType.SESSION_ERROR, username, message, error=message)


# ============================================================
# Combat components
# ============================================================

def emit_engagement_started(bus: EventBus, username: str, target: str, preset: str) -> None:
    """
    Emit an ENGAGEMENT_STARTED event once the attack primitive accepted
    a new target.
    """
    _publish(
        bus, "combat.targeting", EventType.ENGAGEMENT_STARTED, username,
        f"Engaging {target}", target=target, preset=preset,
    )


def emit_engagement_stopped(bus: EventBus, username: str, target: Optional[str], reason: str) -> None:
    """
    Emit an ENGAGEMENT_STOPPED event.

    `reason` is one of "no_target", "retarget", "duration_elapsed".
    """
    _publish(
        bus, "combat.targeting", EventType.ENGAGEMENT_STOPPED, username,
        f"Stopped engagement ({reason})", target=target, reason=reason,
    )


def emit_heal_started(bus: EventBus, username: str, kind: str, item: str, health: float) -> None:
    _publish(
        bus, "combat.healing", EventType.HEAL_STARTED, username,
        f"Healing with {item}", kind=kind, item=item, health=health,
    )


def emit_gear_equipped(bus: EventBus, username: str, slot: str, item: str) -> None:
    _publish(bus, "combat.gear", EventType.GEAR_EQUIPPED, username, f"Equipped {item} to {slot}", slot=slot, item=item)


def emit_action_failed(
    bus: EventBus,
    username: str,
    action: str,
    error: str,
    details: Optional[JsonDict] = None,
) -> None:
    """
    Emit an ACTION_FAILED event for a rejected attack/equip/look/use call.
    """
    extra: JsonDict = {"details": details} if details else {}
    _publish(
        bus, "combat", EventType.ACTION_FAILED, username,
        f"{action} failed: {error}", action=action, error=error, **extra,
    )
