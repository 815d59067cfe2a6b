# combat package
# src/combat/__init__.py
"""
Per-bot combat behaviour.

Exports:
    - create_session / BotSession: one connected bot and its components
    - EngagementScheduler: target scan + delayed, cancellable attacks
    - AdvancedMovementController: strafing and aim (top tier)
    - HealingStateMachine: consumable-based healing
    - GearOptimizer / GearEngine: keep the best equipment on
"""

from __future__ import annotations

from .coalescer import RequestCoalescer
from .gear import GearEngine, GearEquipError, GearOptimizer
from .healing import HealingStateMachine, HealPhase, HealState
from .movement import AdvancedMovementController
from .session import BotSession, SessionError, create_session
from .targeting import EngagementScheduler, TargetCandidate, find_closest_player

__all__ = [
    "AdvancedMovementController",
    "BotSession",
    "EngagementScheduler",
    "GearEngine",
    "GearEquipError",
    "GearOptimizer",
    "HealPhase",
    "HealState",
    "HealingStateMachine",
    "RequestCoalescer",
    "SessionError",
    "TargetCandidate",
    "create_session",
    "find_closest_player",
]
