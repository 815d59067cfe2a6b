# src/combat/gear.py
"""
Gear optimization.

GearOptimizer keeps every equipment destination holding the best item the
inventory offers according to the static priority tables:

    hand      -> weapons
    off-hand  -> shields
    head/torso/legs/feet -> armor tables

Rank is the index in the best-first table; items missing from a table
(and an empty slot) rank as infinity. A slot is re-equipped only when the
best candidate ranks strictly better than what is already there, so equal
items never cause churn.

GearEngine is the per-session component around it: it subscribes to the
client events that can change what "best" means and funnels them through
a RequestCoalescer so at most one pass is scheduled or running.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Iterable, List, Optional, Sequence

from bot_core.net.client import DEATH, INVENTORY_UPDATE, PLAYER_COLLECT, RESPAWN, GameClient
from bot_core.timers import TimerGroup
from bot_core.types import ITEM_NOT_IN_INVENTORY, ActionResult, Entity, Item
from env.schema import EquipmentTables
from monitoring.integration import emit_action_failed, emit_gear_equipped

from .coalescer import RequestCoalescer
from .reporting import SessionReporter

log = logging.getLogger(__name__)

# Delays before re-checking gear after dying / respawning (ms).
DEATH_RECHECK_MS = 600
RESPAWN_RECHECK_MS = 700


class GearEquipError(RuntimeError):
    """An equip call failed for a reason other than the item having moved."""

    def __init__(self, slot: str, item: Item, result: ActionResult) -> None:
        super().__init__(f"equipping {item.name} to {slot} failed: {result.describe()}")
        self.slot = slot
        self.item = item
        self.result = result


def item_rank(ranking: Sequence[str], item: Optional[Item]) -> float:
    if item is None:
        return math.inf
    try:
        return ranking.index(item.name)
    except ValueError:
        return math.inf


def best_inventory_item(items: Iterable[Item], ranking: Sequence[str]) -> Optional[Item]:
    """Lowest-rank item; the first one wins among equals."""
    best: Optional[Item] = None
    best_rank = math.inf
    for item in items:
        rank = item_rank(ranking, item)
        if rank < best_rank:
            best, best_rank = item, rank
    return best


class GearOptimizer:
    def __init__(
        self,
        client: GameClient,
        tables: EquipmentTables,
        reporter: Optional[SessionReporter] = None,
    ) -> None:
        self._client = client
        self._tables = tables
        self._reporter = reporter

    async def optimize(self) -> List[str]:
        """Run one pass over all slots; return the slots that were re-equipped."""
        changed: List[str] = []
        for slot in self._tables.slot_order:
            if await self.equip_best_for_slot(slot):
                changed.append(slot)
        return changed

    async def equip_best_for_slot(self, slot: str) -> bool:
        ranking = self._tables.ranking(slot)
        if not ranking:
            return False

        best = best_inventory_item(self._client.inventory_items(), ranking)
        if best is None:
            return False

        equipped = self._client.equipped_item(slot)
        if item_rank(ranking, best) >= item_rank(ranking, equipped):
            return False

        result = await self._client.equip(best, slot)
        if result.success:
            if self._reporter is not None:
                self._reporter.log.debug("Equipped %s to %s", best.name, slot)
                emit_gear_equipped(self._reporter.bus, self._reporter.username, slot, best.name)
            return True

        if result.error == ITEM_NOT_IN_INVENTORY:
            # Consumed or moved since we looked; the next inventory event
            # will trigger another pass.
            log.debug("Skipping %s for %s: %s", best.name, slot, result.describe())
            return False

        raise GearEquipError(slot, best, result)


class GearEngine:
    """Schedules coalesced gear passes from client events for one session."""

    def __init__(
        self,
        client: GameClient,
        timers: TimerGroup,
        optimizer: GearOptimizer,
        reporter: SessionReporter,
        *,
        hold: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._client = client
        self._timers = timers
        self._optimizer = optimizer
        self._reporter = reporter
        # While hold() is true (e.g. a heal occupies the hand) passes are skipped.
        self._hold = hold
        self._coalescer = RequestCoalescer(
            timers,
            self._run_pass,
            name=f"gear-pass:{reporter.username}",
            on_error=self._on_pass_error,
        )
        self._attached = False
        self.skipped_passes = 0

    @property
    def coalescer(self) -> RequestCoalescer:
        return self._coalescer

    def attach(self) -> None:
        if self._attached:
            return
        self._client.on(INVENTORY_UPDATE, self._on_inventory_update)
        self._client.on(PLAYER_COLLECT, self._on_collect)
        self._client.on(DEATH, self._on_death)
        self._client.on(RESPAWN, self._on_respawn)
        self._attached = True
        self.request_pass()

    def detach(self) -> None:
        if not self._attached:
            return
        self._client.off(INVENTORY_UPDATE, self._on_inventory_update)
        self._client.off(PLAYER_COLLECT, self._on_collect)
        self._client.off(DEATH, self._on_death)
        self._client.off(RESPAWN, self._on_respawn)
        self._attached = False

    def request_pass(self) -> bool:
        return self._coalescer.request()

    def request_pass_later(self, delay_ms: float) -> None:
        self._coalescer.request_later(delay_ms)

    # -- event handlers -------------------------------------------------

    def _on_inventory_update(self, *_: object) -> None:
        self.request_pass()

    def _on_collect(self, collector: Optional[Entity], *_: object) -> None:
        own = self._client.entity
        if own is not None and collector == own:
            self.request_pass()

    def _on_death(self, *_: object) -> None:
        self.request_pass_later(DEATH_RECHECK_MS)

    def _on_respawn(self, *_: object) -> None:
        self.request_pass_later(RESPAWN_RECHECK_MS)

    # -- pass ----------------------------------------------------------

    async def _run_pass(self) -> None:
        if self._hold is not None and self._hold():
            self.skipped_passes += 1
            return
        await self._optimizer.optimize()

    def _on_pass_error(self, exc: BaseException) -> None:
        self._reporter.log.warning("Failed to optimise gear: %s", exc)
        if isinstance(exc, GearEquipError):
            emit_action_failed(
                self._reporter.bus,
                self._reporter.username,
                "equip",
                str(exc.result.error),
                {"slot": exc.slot, "item": exc.item.name},
            )
