# game client protocol + handler registry
# src/bot_core/net/client.py
"""
Client abstraction for the external game client.

Defines the GameClient protocol consumed by the combat layer, the event
names a client emits, and a small handler registry that concrete clients
(IpcGameClient, FakeGameClient) share.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from ..types import ActionResult, Entity, Item, Player, Vec3

log = logging.getLogger(__name__)

# Type alias for event handlers. Arguments depend on the event.
EventHandler = Callable[..., None]


# ---------------------------------------------------------------------------
# Event names
# ---------------------------------------------------------------------------

SPAWN = "spawn"                      # joined the world (first spawn)
KICKED = "kicked"                    # (reason)
END = "end"                          # (reason) connection closed
ERROR = "error"                      # (message)
PHYSICS_TICK = "physics_tick"
HEALTH = "health"
PLAYER_COLLECT = "player_collect"    # (collector: Entity, collected: Entity)
DEATH = "death"
RESPAWN = "respawn"
INVENTORY_UPDATE = "inventory_update"  # (slot: int)

# Movement keys accepted by set_control_state().
CONTROL_KEYS = ("forward", "back", "left", "right", "jump", "sprint", "sneak")


@dataclass(frozen=True)
class ConnectOptions:
    """Parameters for opening one game connection."""

    host: str
    port: int
    username: str


class GameClient(Protocol):
    """
    Abstract interface for one connected game client.

    Queries are synchronous reads of the client's world view. Action
    primitives report failure through ActionResult; equip and look_at
    need a round trip and are awaited.
    """

    username: str

    # -- world queries -------------------------------------------------

    @property
    def entity(self) -> Optional[Entity]:
        """The bot's own entity, or None while not in the world."""
        ...

    @property
    def health(self) -> float:
        ...

    @property
    def engagement_target(self) -> Optional[Entity]:
        """Entity the combat routine is currently attacking, if any."""
        ...

    def players(self) -> Mapping[str, Player]:
        """Known players keyed by username, in the client's enumeration order."""
        ...

    def inventory_items(self) -> List[Item]:
        ...

    def equipped_item(self, destination: str) -> Optional[Item]:
        ...

    # -- events --------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        ...

    def off(self, event: str, handler: EventHandler) -> None:
        ...

    # -- action primitives --------------------------------------------

    def attack(self, target: Entity) -> ActionResult:
        ...

    def stop_engagement(self) -> ActionResult:
        ...

    def set_control_state(self, key: str, active: bool) -> ActionResult:
        ...

    def activate_item(self) -> ActionResult:
        ...

    def deactivate_item(self) -> ActionResult:
        ...

    async def equip(self, item: Item, destination: str) -> ActionResult:
        ...

    async def look_at(self, position: Vec3, force: bool = True) -> ActionResult:
        ...

    def quit(self, reason: str = "disconnect.quitting") -> None:
        ...


# Builds a client for the given options and starts connecting it.
ConnectionFactory = Callable[[ConnectOptions], GameClient]


class EventRegistry:
    """
    Ordered handler lists per event name.

    emit() iterates over a snapshot so handlers may detach themselves (or
    others) while an event is being dispatched. A failing handler is logged
    and does not stop the remaining ones.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._handlers.get(event, ()))
        return sum(len(h) for h in self._handlers.values())

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                log.exception("Error in %s handler %r", event, handler)
