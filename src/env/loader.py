from __future__ import annotations

import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .schema import (
    ARMOR_SLOTS,
    HAND,
    OFF_HAND,
    AdvancedConfig,
    BridgeConfig,
    ConfigError,
    DifficultyPreset,
    EquipmentTables,
    RuntimeProfile,
    ServerAddress,
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_ROOT = PROJECT_ROOT / "config"

# Full health in half-hearts.
MAX_HEALTH = 20.0


def config_root() -> Path:
    """Directory holding the YAML files; KITPVP_CONFIG_ROOT overrides it."""
    override = os.getenv("KITPVP_CONFIG_ROOT")
    return Path(override) if override else DEFAULT_CONFIG_ROOT


def _load_yaml(name: str) -> Dict[str, Any]:
    """Load a YAML config file from the config/ directory."""
    path = config_root() / name
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at top of {path}, got {type(data)}")
    return data


def _positive_int(raw: Any, field: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{field} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{field} must be positive, got {value}")
    return value


def _ranking(raw: Any, field: str) -> Tuple[str, ...]:
    if not isinstance(raw, list) or not raw:
        raise ConfigError(f"{field} must be a non-empty list of item ids")
    items = tuple(str(item) for item in raw)
    if len(set(items)) != len(items):
        raise ConfigError(f"{field} lists the same item more than once")
    return items


def _number(raw: Any, field: str, low: float, high: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{field} must be a number, got {raw!r}") from None
    if not low <= value <= high:
        raise ConfigError(f"{field} must be within [{low:g}, {high:g}], got {value:g}")
    return value


def _parse_advanced(name: str, raw: Mapping[str, Any]) -> AdvancedConfig:
    prefix = f"presets.{name}.advanced"
    return AdvancedConfig(
        strafe_interval_ms=_positive_int(raw.get("strafe_interval_ms"), f"{prefix}.strafe_interval_ms"),
        jump_pulse_ms=_positive_int(raw.get("jump_pulse_ms", 200), f"{prefix}.jump_pulse_ms"),
        jump_chance=_number(raw.get("jump_chance", 0.0), f"{prefix}.jump_chance", 0.0, 1.0),
        heal_threshold=_number(raw.get("heal_threshold", 0), f"{prefix}.heal_threshold", 0.0, MAX_HEALTH),
        heal_cooldown_ms=int(
            _number(raw.get("heal_cooldown_ms", 0), f"{prefix}.heal_cooldown_ms", 0.0, float("inf"))
        ),
        aim_height_offset=float(raw.get("aim_height_offset", 1.25)),
    )


def _parse_preset(name: str, raw: Mapping[str, Any]) -> DifficultyPreset:
    prefix = f"presets.{name}"
    delay = raw.get("reaction_delay_ms")
    if not isinstance(delay, (list, tuple)) or len(delay) != 2:
        raise ConfigError(f"{prefix}.reaction_delay_ms must be a [min, max] pair")
    try:
        low, high = float(delay[0]), float(delay[1])
    except (TypeError, ValueError):
        raise ConfigError(f"{prefix}.reaction_delay_ms must be numeric, got {delay!r}") from None
    if low < 0 or high < 0:
        raise ConfigError(f"{prefix}.reaction_delay_ms must not be negative")

    duration = raw.get("attack_duration_ms")
    advanced = raw.get("advanced")
    if advanced is not None and not isinstance(advanced, dict):
        raise ConfigError(f"{prefix}.advanced must be a mapping")

    return DifficultyPreset(
        name=name,
        scan_interval_ms=_positive_int(raw.get("scan_interval_ms"), f"{prefix}.scan_interval_ms"),
        reaction_delay_range=(low, high),
        attack_duration_ms=(
            _positive_int(duration, f"{prefix}.attack_duration_ms") if duration else None
        ),
        maintain_sprint=bool(raw.get("maintain_sprint", False)),
        manage_gear=bool(raw.get("manage_gear", False)),
        advanced=_parse_advanced(name, advanced) if advanced else None,
    )


# ---------------------------------------------------------------------------
# Process-local caches
# ---------------------------------------------------------------------------

_presets: Optional[Mapping[str, DifficultyPreset]] = None
_default_preset: Optional[str] = None
_equipment: Optional[EquipmentTables] = None
_runtime: Optional[RuntimeProfile] = None


def _reset_caches_for_tests() -> None:
    """
    Hard-reset the cached registries.

    Only meant for test isolation (e.g. after pointing KITPVP_CONFIG_ROOT at
    a temporary directory).
    """
    global _presets, _default_preset, _equipment, _runtime
    _presets = None
    _default_preset = None
    _equipment = None
    _runtime = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_difficulty_presets() -> Mapping[str, DifficultyPreset]:
    """Return the read-only preset registry, reading difficulty.yaml once."""
    global _presets, _default_preset
    if _presets is None:
        cfg = _load_yaml("difficulty.yaml")
        raw_presets = cfg.get("presets")
        if not isinstance(raw_presets, dict) or not raw_presets:
            raise ConfigError("difficulty.yaml must define a non-empty 'presets' mapping.")

        presets: Dict[str, DifficultyPreset] = {}
        for name, body in raw_presets.items():
            if body is not None and not isinstance(body, dict):
                raise ConfigError(f"presets.{name} must be a mapping, got {type(body).__name__}")
            presets[str(name)] = _parse_preset(str(name), body or {})
        default = str(cfg.get("default") or next(iter(presets)))
        if default not in presets:
            raise ConfigError(f"Default preset '{default}' not found in difficulty.yaml")

        _presets = MappingProxyType(presets)
        _default_preset = default
    return _presets


def default_preset_name() -> str:
    load_difficulty_presets()
    assert _default_preset is not None
    return _default_preset


def get_preset(name: Optional[str] = None) -> DifficultyPreset:
    """Look up a preset by name; None selects the configured default."""
    presets = load_difficulty_presets()
    key = name or default_preset_name()
    if key not in presets:
        known = ", ".join(sorted(presets))
        raise ConfigError(f"Unknown difficulty '{key}' (known: {known})")
    return presets[key]


def load_equipment_tables() -> EquipmentTables:
    """Return the item priority tables, reading equipment.yaml once."""
    global _equipment
    if _equipment is None:
        cfg = _load_yaml("equipment.yaml")
        armor = cfg.get("armor") or {}
        if not isinstance(armor, dict):
            raise ConfigError("equipment.yaml 'armor' must be a mapping")
        healing = cfg.get("healing") or {}

        slots: Dict[str, Tuple[str, ...]] = {
            HAND: _ranking(cfg.get("weapons"), "weapons"),
            OFF_HAND: _ranking(cfg.get("shields"), "shields"),
        }
        for slot in ARMOR_SLOTS:
            slots[slot] = _ranking(armor.get(slot), f"armor.{slot}")

        _equipment = EquipmentTables(
            slots=MappingProxyType(slots),
            slot_order=(HAND, OFF_HAND) + ARMOR_SLOTS,
            soups=_ranking(healing.get("soups"), "healing.soups"),
            golden_apples=_ranking(healing.get("golden_apples"), "healing.golden_apples"),
        )
    return _equipment


def load_runtime_profile() -> RuntimeProfile:
    """Return process-wide runtime settings, reading runtime.yaml once."""
    global _runtime
    if _runtime is None:
        cfg = _load_yaml("runtime.yaml")
        bridge_raw = cfg.get("bridge") or {}
        max_distance = float(cfg.get("max_scan_distance", 48))
        if max_distance <= 0:
            raise ConfigError("max_scan_distance must be positive")

        _runtime = RuntimeProfile(
            username_prefix=str(cfg.get("username_prefix", "KitPvPBot")),
            default_port=_positive_int(cfg.get("default_port", 25565), "default_port"),
            spawn_stagger_ms=int(cfg.get("spawn_stagger_ms", 750)),
            max_scan_distance=max_distance,
            bridge=BridgeConfig(
                host=str(bridge_raw.get("host", "127.0.0.1")),
                port=_positive_int(bridge_raw.get("port", 7450), "bridge.port"),
            ),
            events_log=cfg.get("events_log"),
        )
    return _runtime


def parse_server_address(raw: Optional[str], default_port: int = 25565) -> ServerAddress:
    """Parse `host` or `host:port` into a ServerAddress."""
    if not raw or not isinstance(raw, str):
        raise ConfigError("Server address must be a non-empty string.")

    parts: List[str] = raw.split(":")
    host = parts[0].strip()
    if not host:
        raise ConfigError("Server host is required.")

    port = default_port
    if len(parts) > 1 and parts[1].strip():
        try:
            port = int(parts[1])
        except ValueError:
            raise ConfigError("Server port must be a number between 1 and 65535.") from None
        if not 0 < port <= 65535:
            raise ConfigError("Server port must be a number between 1 and 65535.")

    return ServerAddress(host=host, port=port)
