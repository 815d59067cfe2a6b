# DifficultyPreset, EquipmentTables, RuntimeProfile dataclasses
# src/env/schema.py
"""
Immutable configuration records.

Everything here is built once by env.loader and shared read-only by every
bot session in the process. Sequences are tuples and mappings are wrapped
in MappingProxyType so nothing downstream can mutate a shared table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple


class ConfigError(ValueError):
    """Raised for invalid configuration files or command-line values."""


# Equipment destinations understood by the game client.
HAND = "hand"
OFF_HAND = "off-hand"
HEAD = "head"
TORSO = "torso"
LEGS = "legs"
FEET = "feet"

ARMOR_SLOTS: Tuple[str, ...] = (HEAD, TORSO, LEGS, FEET)


@dataclass(frozen=True)
class AdvancedConfig:
    """Knobs for the top difficulty tier (movement, aim, healing)."""

    strafe_interval_ms: int
    jump_pulse_ms: int
    jump_chance: float          # probability per strafe tick, 0..1
    heal_threshold: float       # health points; heal below this
    heal_cooldown_ms: int
    aim_height_offset: float    # blocks above the target's feet


@dataclass(frozen=True)
class DifficultyPreset:
    """Named bundle of timing/behaviour parameters for one difficulty tier."""

    name: str
    scan_interval_ms: int
    reaction_delay_range: Tuple[float, float]
    attack_duration_ms: Optional[int]
    maintain_sprint: bool
    manage_gear: bool = False
    advanced: Optional[AdvancedConfig] = None

    def reaction_delay_bounds(self) -> Tuple[float, float]:
        """Return (low, high) regardless of the order written in config."""
        a, b = self.reaction_delay_range
        return (min(a, b), max(a, b))


@dataclass(frozen=True)
class EquipmentTables:
    """
    Static best-first item rankings.

    `slots` maps an equipment destination (hand, off-hand, head, ...) to
    its ranking; `slot_order` is the order a gear pass walks them in.
    """

    slots: Mapping[str, Tuple[str, ...]]
    slot_order: Tuple[str, ...]
    soups: Tuple[str, ...]
    golden_apples: Tuple[str, ...]

    def ranking(self, slot: str) -> Tuple[str, ...]:
        return self.slots.get(slot, ())


@dataclass(frozen=True)
class BridgeConfig:
    """Where the game-protocol bridge process listens."""

    host: str
    port: int


@dataclass(frozen=True)
class RuntimeProfile:
    """Process-wide runtime settings from config/runtime.yaml."""

    username_prefix: str
    default_port: int
    spawn_stagger_ms: int
    max_scan_distance: float
    bridge: BridgeConfig
    events_log: Optional[str] = None


@dataclass(frozen=True)
class ServerAddress:
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class RunConfig:
    """Resolved configuration handed to session creation."""

    server: ServerAddress
    preset: DifficultyPreset
    bot_count: int = 1
    max_scan_distance: float = 48.0
    username_prefix: str = "KitPvPBot"
    spawn_stagger_ms: int = 750
