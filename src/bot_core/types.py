# world query types + ActionResult shared by the game client and combat layers
# src/bot_core/types.py
"""
Shared types for the game-client boundary.

These are the shapes the external client exposes to the combat core:
positions, entities, players, inventory items, and the outcome of an
action primitive. They stay deliberately thin; the client owns the real
world model and the combat layer only reads it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


# Error code reported by equip() when the item left the inventory between
# selection and the equip call (consumed, dropped, moved).
ITEM_NOT_IN_INVENTORY = "item_not_in_inventory"


@dataclass(frozen=True)
class Vec3:
    x: float
    y: float
    z: float

    def offset(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> "Vec3":
        return Vec3(self.x + dx, self.y + dy, self.z + dz)

    def distance_squared(self, other: "Vec3") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        dz = self.z - other.z
        return dx * dx + dy * dy + dz * dz


@dataclass(eq=False)
class Entity:
    """
    A live entity as tracked by the client.

    Instances are mutable (the client moves them in place) so equality is
    by entity_id, never by position.
    """

    entity_id: int
    position: Vec3
    height: float = 1.8

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self.entity_id == other.entity_id

    def __hash__(self) -> int:
        return hash(self.entity_id)


@dataclass
class Player:
    """
    Entry in the client's player list.

    `entity` is None when the player is connected but outside render
    distance.
    """

    username: str
    entity: Optional[Entity] = None


@dataclass(frozen=True)
class Item:
    name: str
    slot: int
    count: int = 1


@dataclass
class ActionResult:
    """Outcome of an action primitive; failures are values, not exceptions."""

    success: bool
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **details: Any) -> "ActionResult":
        return cls(success=True, error=None, details=dict(details))

    @classmethod
    def failed(cls, error: str, **details: Any) -> "ActionResult":
        return cls(success=False, error=error, details=dict(details))

    def describe(self) -> str:
        """Short human-readable failure text for log lines."""
        if self.success:
            return "ok"
        message = self.details.get("message")
        return f"{self.error}: {message}" if message else str(self.error)
