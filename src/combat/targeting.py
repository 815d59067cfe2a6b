# src/combat/targeting.py
"""
Target acquisition and engagement scheduling.

Every scan interval the scheduler looks for the nearest other player
within range. Spotting someone does not attack immediately: a one-shot
timer fires after a random reaction delay drawn from the preset, and only
then is the target re-resolved and engaged. A newer scan always cancels
the still-pending attack of an older one, so at most one attack timer is
pending per session.

The scheduler is the only component that starts or stops engagements;
movement and healing only read `client.engagement_target`.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Optional

from bot_core.net.client import GameClient
from bot_core.timers import Cancellable, TimerGroup, ms
from bot_core.types import ActionResult, Entity
from env.schema import DifficultyPreset
from monitoring.integration import (
    emit_action_failed,
    emit_engagement_started,
    emit_engagement_stopped,
)

from .reporting import SessionReporter

MAX_SCAN_DISTANCE = 48.0


@dataclass(frozen=True)
class TargetCandidate:
    """Result of a scan. Only `username` is trusted once time has passed."""

    username: str
    entity: Entity
    distance_squared: float


def find_closest_player(client: GameClient, max_distance_squared: float) -> Optional[TargetCandidate]:
    """
    Nearest other player with a loaded entity, within range.

    Among equally distant players the first one in the client's
    enumeration order wins.
    """
    own = client.entity
    if own is None:
        return None

    closest: Optional[TargetCandidate] = None
    closest_distance = math.inf
    for username, player in client.players().items():
        if username == client.username or player is None or player.entity is None:
            continue
        distance = own.position.distance_squared(player.entity.position)
        if distance < closest_distance and distance <= max_distance_squared:
            closest = TargetCandidate(username, player.entity, distance)
            closest_distance = distance
    return closest


class EngagementScheduler:
    def __init__(
        self,
        client: GameClient,
        timers: TimerGroup,
        preset: DifficultyPreset,
        reporter: SessionReporter,
        *,
        max_scan_distance: float = MAX_SCAN_DISTANCE,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._client = client
        self._timers = timers
        self._preset = preset
        self._reporter = reporter
        self._max_distance_sq = max_scan_distance * max_scan_distance
        self._rng = rng or random.Random()

        self._scan_handle: Optional[Cancellable] = None
        self._pending_attack: Optional[Cancellable] = None
        self.last_candidate: Optional[TargetCandidate] = None

    @property
    def attack_pending(self) -> bool:
        return self._pending_attack is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self) -> None:
        if self._scan_handle is None:
            self._scan_handle = self._timers.call_every(ms(self._preset.scan_interval_ms), self.scan)

    def detach(self) -> None:
        self._timers.cancel(self._scan_handle)
        self._scan_handle = None
        self._timers.cancel(self._pending_attack)
        self._pending_attack = None

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def scan(self) -> Optional[TargetCandidate]:
        if self._client.entity is None:
            return None

        candidate = find_closest_player(self._client, self._max_distance_sq)
        self.last_candidate = candidate

        if candidate is None:
            self._timers.cancel(self._pending_attack)
            self._pending_attack = None
            if self._preset.maintain_sprint:
                self._client.set_control_state("sprint", False)
            current = self._client.engagement_target
            if current is not None:
                self._stop("no_target", current)
            return None

        low, high = self._preset.reaction_delay_bounds()
        delay_ms = self._rng.uniform(low, high)

        self._timers.cancel(self._pending_attack)
        self._pending_attack = self._timers.call_later(ms(delay_ms), self._execute_attack, candidate)
        return candidate

    # ------------------------------------------------------------------
    # Scheduled attack
    # ------------------------------------------------------------------

    def _execute_attack(self, candidate: TargetCandidate) -> None:
        self._pending_attack = None
        client = self._client
        if client.entity is None:
            return

        # The entity captured at scan time may be stale by now.
        player = client.players().get(candidate.username)
        if player is None or player.entity is None:
            return
        target = player.entity

        if self._preset.maintain_sprint:
            client.set_control_state("sprint", True)

        current = client.engagement_target
        if current is not None and current != target:
            self._stop("retarget", current)

        if client.engagement_target is None:
            self._start(candidate.username, target)

        if self._preset.attack_duration_ms:
            self._timers.call_later(
                ms(self._preset.attack_duration_ms),
                self._end_timed_engagement,
                target,
            )

    def _start(self, username: str, target: Entity) -> None:
        reporter = self._reporter
        try:
            result = self._client.attack(target)
        except Exception as exc:
            result = ActionResult.failed("attack_exception", message=str(exc))

        if result.success:
            reporter.log.info("Engaging %s (%s).", username, self._preset.name)
            emit_engagement_started(reporter.bus, reporter.username, username, self._preset.name)
        else:
            reporter.log.warning("Failed to attack %s: %s", username, result.describe())
            emit_action_failed(reporter.bus, reporter.username, "attack", str(result.error), {"target": username})

    def _end_timed_engagement(self, target: Entity) -> None:
        current = self._client.engagement_target
        # A newer engagement may have replaced this one; leave it alone.
        if current is None or current != target:
            return
        self._stop("duration_elapsed", current)
        if self._preset.maintain_sprint:
            self._client.set_control_state("sprint", False)

    def _stop(self, reason: str, target: Entity) -> None:
        self._client.stop_engagement()
        username = self._username_of(target)
        emit_engagement_stopped(self._reporter.bus, self._reporter.username, username, reason)

    def _username_of(self, entity: Entity) -> Optional[str]:
        for username, player in self._client.players().items():
            if player.entity is not None and player.entity == entity:
                return username
        return None
