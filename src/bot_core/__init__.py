# bot_core package
# src/bot_core/__init__.py
"""
Game-client boundary for the combat bots.

Exports:
    - GameClient / ConnectOptions / ConnectionFactory: what a session talks to
    - Vec3, Entity, Player, Item, ActionResult: shared world-query types
    - TimerHost, AsyncioTimerHost, TimerGroup: timer scheduling
"""

from __future__ import annotations

from .net.client import ConnectionFactory, ConnectOptions, EventRegistry, GameClient
from .timers import AsyncioTimerHost, TimerGroup, TimerHost
from .types import ITEM_NOT_IN_INVENTORY, ActionResult, Entity, Item, Player, Vec3

__all__ = [
    "ITEM_NOT_IN_INVENTORY",
    "ActionResult",
    "AsyncioTimerHost",
    "ConnectionFactory",
    "ConnectOptions",
    "Entity",
    "EventRegistry",
    "GameClient",
    "Item",
    "Player",
    "TimerGroup",
    "TimerHost",
    "Vec3",
]
