# src/combat/healing.py
"""
Healing state machine.

    IDLE -> HEALING -> COOLDOWN -> IDLE

Every health notification re-evaluates the guards: the bot must be alive
and in the world, below the heal threshold, not already healing, and past
the cooldown since the last heal began. Soups are preferred over golden
apples. The chosen item is equipped to the main hand and used; use ends
after a fixed, item-dependent duration.

`in_progress` is cleared by a timer a fixed time after the attempt, not by
any acknowledgement from the client, and that timer is armed whether the
attempt worked or not. The cooldown is measured from the moment use
began.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Tuple

from bot_core.net.client import HEALTH, GameClient
from bot_core.timers import TimerGroup, ms
from bot_core.types import ActionResult, Item
from env.schema import HAND, AdvancedConfig, EquipmentTables
from monitoring.integration import emit_action_failed, emit_heal_started

from .reporting import SessionReporter

log = logging.getLogger(__name__)


class HealPhase(Enum):
    IDLE = "idle"
    HEALING = "healing"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class HealProfile:
    """Timings (ms) for one consumable class."""

    kind: str
    use_ms: int            # how long the use gesture is held
    reset_ms: int          # when in_progress is cleared
    gear_followup_ms: int  # when the hand is handed back to the gear optimizer


SOUP = HealProfile(kind="soup", use_ms=150, reset_ms=600, gear_followup_ms=450)
GOLDEN_APPLE = HealProfile(kind="golden_apple", use_ms=1600, reset_ms=2000, gear_followup_ms=1900)


@dataclass
class HealState:
    in_progress: bool = False
    last_heal_at: Optional[float] = None  # timer clock seconds, set when use begins
    last_kind: Optional[str] = None


def find_item_by_names(items: Iterable[Item], names: Sequence[str]) -> Optional[Item]:
    """First inventory item matching the earliest name in `names`."""
    inventory = list(items)
    for name in names:
        for item in inventory:
            if item.name == name:
                return item
    return None


class HealingStateMachine:
    def __init__(
        self,
        client: GameClient,
        timers: TimerGroup,
        advanced: AdvancedConfig,
        tables: EquipmentTables,
        reporter: SessionReporter,
        *,
        request_gear_pass: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._client = client
        self._timers = timers
        self._cfg = advanced
        self._tables = tables
        self._reporter = reporter
        self._request_gear_pass = request_gear_pass
        self.state = HealState()
        # True from the start of an attempt until the use gesture ends.
        self._hand_busy = False
        self._attached = False

    @property
    def hand_busy(self) -> bool:
        return self._hand_busy

    @property
    def phase(self) -> HealPhase:
        if self.state.in_progress:
            return HealPhase.HEALING
        if self._cooling_down():
            return HealPhase.COOLDOWN
        return HealPhase.IDLE

    def attach(self) -> None:
        if not self._attached:
            self._client.on(HEALTH, self._on_health)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._client.off(HEALTH, self._on_health)
            self._attached = False

    # ------------------------------------------------------------------
    # Guards and selection
    # ------------------------------------------------------------------

    def _cooling_down(self) -> bool:
        last = self.state.last_heal_at
        if last is None:
            return False
        return (self._timers.now() - last) < ms(self._cfg.heal_cooldown_ms)

    def should_heal(self) -> bool:
        client = self._client
        if client.entity is None or client.health <= 0:
            return False
        if client.health >= self._cfg.heal_threshold:
            return False
        if self.state.in_progress or self._cooling_down():
            return False
        return True

    def select_consumable(self) -> Optional[Tuple[Item, HealProfile]]:
        items = self._client.inventory_items()
        soup = find_item_by_names(items, self._tables.soups)
        if soup is not None:
            return soup, SOUP
        apple = find_item_by_names(items, self._tables.golden_apples)
        if apple is not None:
            return apple, GOLDEN_APPLE
        return None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def request_heal(self) -> Optional[HealProfile]:
        """
        Start a heal if the guards allow it.

        Guards and the in_progress flag are settled synchronously so no
        second attempt can start while this one awaits the equip.
        """
        if not self.should_heal():
            return None
        choice = self.select_consumable()
        if choice is None:
            return None

        item, profile = choice
        self.state.in_progress = True
        self._hand_busy = True
        self._timers.spawn(self._execute(item, profile), name=f"heal:{self._reporter.username}")
        return profile

    async def _execute(self, item: Item, profile: HealProfile) -> None:
        used = False
        try:
            result = await self._client.equip(item, HAND)
            if result.success:
                result = self._client.activate_item()
            if not result.success:
                self._report_failure(result)
                return

            used = True
            self.state.last_heal_at = self._timers.now()
            self.state.last_kind = profile.kind
            self._reporter.log.debug("Healing with %s", item.name)
            emit_heal_started(
                self._reporter.bus,
                self._reporter.username,
                profile.kind,
                item.name,
                self._client.health,
            )
            self._timers.call_later(ms(profile.use_ms), self._end_use)
            if self._request_gear_pass is not None:
                self._request_gear_pass(profile.gear_followup_ms)
        except Exception as exc:
            self._report_failure(ActionResult.failed("heal_exception", message=str(exc)))
        finally:
            if not used:
                self._hand_busy = False
            self._timers.call_later(ms(profile.reset_ms), self._unwind)

    def _end_use(self) -> None:
        self._hand_busy = False
        result = self._client.deactivate_item()
        if not result.success:
            log.debug("deactivate_item rejected: %s", result.describe())

    def _unwind(self) -> None:
        self.state.in_progress = False

    def _report_failure(self, result: ActionResult) -> None:
        self._reporter.log.warning("Failed to heal: %s", result.describe())
        emit_action_failed(self._reporter.bus, self._reporter.username, "heal", str(result.error))

    # -- event handlers -------------------------------------------------

    def _on_health(self, *_: object) -> None:
        self.request_heal()
