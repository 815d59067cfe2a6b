# env package
# src/env/__init__.py
"""
Configuration layer: YAML-backed presets, priority tables and runtime
settings, loaded once per process and shared read-only.
"""

from __future__ import annotations

from .loader import (
    get_preset,
    load_difficulty_presets,
    load_equipment_tables,
    load_runtime_profile,
    parse_server_address,
)
from .schema import ConfigError, DifficultyPreset, EquipmentTables, RunConfig, ServerAddress

__all__ = [
    "ConfigError",
    "DifficultyPreset",
    "EquipmentTables",
    "RunConfig",
    "ServerAddress",
    "get_preset",
    "load_difficulty_presets",
    "load_equipment_tables",
    "load_runtime_profile",
    "parse_server_address",
]
