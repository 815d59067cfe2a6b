# src/combat/movement.py
"""
Advanced movement controller (top difficulty tier only).

While engaged the bot strafes left and right on a fixed interval, with a
random chance of a short jump pulse per strafe tick, and keeps its view
on the target on every physics tick. Looking is best effort: failures are
dropped, and a new look is not issued while the previous one is still
awaiting its acknowledgement.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from bot_core.net.client import DEATH, PHYSICS_TICK, RESPAWN, GameClient
from bot_core.timers import Cancellable, TimerGroup, ms
from bot_core.types import Vec3
from env.schema import AdvancedConfig

from .reporting import SessionReporter

log = logging.getLogger(__name__)


class AdvancedMovementController:
    def __init__(
        self,
        client: GameClient,
        timers: TimerGroup,
        advanced: AdvancedConfig,
        reporter: SessionReporter,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._client = client
        self._timers = timers
        self._cfg = advanced
        self._reporter = reporter
        self._rng = rng or random.Random()

        self._direction = 1
        self._strafe_handle: Optional[Cancellable] = None
        self._aim_in_flight = False
        self._attached = False
        self.looks_failed = 0

    @property
    def direction(self) -> int:
        """+1 while strafing right, -1 while strafing left."""
        return self._direction

    def attach(self) -> None:
        if self._attached:
            return
        self._strafe_handle = self._timers.call_every(ms(self._cfg.strafe_interval_ms), self.strafe_tick)
        self._client.on(PHYSICS_TICK, self._on_physics_tick)
        self._client.on(DEATH, self._on_death_or_respawn)
        self._client.on(RESPAWN, self._on_death_or_respawn)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self.stop_strafe()
        self._timers.cancel(self._strafe_handle)
        self._strafe_handle = None
        self._client.off(PHYSICS_TICK, self._on_physics_tick)
        self._client.off(DEATH, self._on_death_or_respawn)
        self._client.off(RESPAWN, self._on_death_or_respawn)
        self._attached = False

    def stop_strafe(self) -> None:
        client = self._client
        client.set_control_state("left", False)
        client.set_control_state("right", False)
        client.set_control_state("jump", False)

    def strafe_tick(self) -> None:
        client = self._client
        if client.engagement_target is None:
            self.stop_strafe()
            return

        self._direction = -self._direction
        move_right = self._direction > 0
        client.set_control_state("right", move_right)
        client.set_control_state("left", not move_right)

        if self._cfg.jump_chance and self._rng.random() < self._cfg.jump_chance:
            client.set_control_state("jump", True)
            self._timers.call_later(ms(self._cfg.jump_pulse_ms), client.set_control_state, "jump", False)

    def aim_position(self) -> Optional[Vec3]:
        target = self._client.engagement_target
        if target is None:
            return None
        return target.position.offset(dy=self._cfg.aim_height_offset)

    # -- event handlers -------------------------------------------------

    def _on_physics_tick(self, *_: object) -> None:
        if self._aim_in_flight:
            return
        position = self.aim_position()
        if position is None:
            return
        self._aim_in_flight = True
        self._timers.spawn(self._aim(position), name=f"aim:{self._reporter.username}")

    async def _aim(self, position: Vec3) -> None:
        try:
            result = await self._client.look_at(position, True)
            if not result.success:
                self.looks_failed += 1
                log.debug("look_at rejected: %s", result.describe())
        except Exception as exc:
            self.looks_failed += 1
            log.debug("look_at raised: %r", exc)
        finally:
            self._aim_in_flight = False

    def _on_death_or_respawn(self, *_: object) -> None:
        self.stop_strafe()
