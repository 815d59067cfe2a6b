# src/combat/session.py
"""
Bot session lifecycle.

A BotSession owns exactly one game connection and everything hanging off
it: the session's TimerGroup, the engagement scheduler, and (depending on
the preset) the movement controller, healing state machine and gear
engine.

    create_session() -> connect -> "spawn" -> components attached
                                -> "end"   -> teardown

Teardown detaches every component listener and cancels every timer and
task the session created, so nothing fires for a dead connection.
Sessions never share mutable state with each other.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional, Protocol

from bot_core.net.client import END, ERROR, KICKED, SPAWN, ConnectionFactory, ConnectOptions, GameClient
from bot_core.timers import TimerGroup, TimerHost
from env.loader import load_equipment_tables
from env.schema import EquipmentTables, RunConfig
from monitoring.bus import EventBus
from monitoring.integration import (
    emit_session_connected,
    emit_session_ended,
    emit_session_error,
    emit_session_kicked,
)

from .gear import GearEngine, GearOptimizer
from .healing import HealingStateMachine, HealState
from .movement import AdvancedMovementController
from .reporting import SessionReporter
from .targeting import EngagementScheduler

log = logging.getLogger(__name__)


class SessionError(RuntimeError):
    """Lifecycle misuse, e.g. connecting a session twice."""


class Component(Protocol):
    def attach(self) -> None:
        ...

    def detach(self) -> None:
        ...


def generate_username(prefix: str, index: int, rng: random.Random) -> str:
    return f"{prefix}_{index + 1}_{rng.randrange(1000)}"


class BotSession:
    def __init__(
        self,
        index: int,
        config: RunConfig,
        connection_factory: ConnectionFactory,
        timer_host: TimerHost,
        *,
        bus: Optional[EventBus] = None,
        tables: Optional[EquipmentTables] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.index = index
        self.config = config
        self.preset = config.preset
        self._factory = connection_factory
        self._rng = rng or random.Random()
        self._tables = tables

        self.username = generate_username(config.username_prefix, index, self._rng)
        self.reporter = SessionReporter(self.username, bus)
        self.timers = TimerGroup(timer_host)

        self.client: Optional[GameClient] = None
        self.scheduler: Optional[EngagementScheduler] = None
        self.movement: Optional[AdvancedMovementController] = None
        self.healing: Optional[HealingStateMachine] = None
        self.gear: Optional[GearEngine] = None
        self._components: List[Component] = []

        self.active = False
        self.closed = False
        self._done_callbacks: List[Callable[["BotSession"], None]] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def log(self) -> logging.LoggerAdapter:
        return self.reporter.log

    @property
    def heal_state(self) -> Optional[HealState]:
        return self.healing.state if self.healing is not None else None

    @property
    def equip_scheduled(self) -> bool:
        return self.gear is not None and self.gear.coalescer.busy

    def add_done_callback(self, fn: Callable[["BotSession"], None]) -> None:
        """Call fn(session) once the session has been torn down."""
        if self.closed:
            fn(self)
        else:
            self._done_callbacks.append(fn)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> GameClient:
        if self.client is not None:
            raise SessionError(f"session {self.username} is already connected")
        if self.closed:
            raise SessionError(f"session {self.username} has been torn down")

        server = self.config.server
        client = self._factory(ConnectOptions(host=server.host, port=server.port, username=self.username))
        self.client = client
        client.on(SPAWN, self._on_spawn)
        client.on(KICKED, self._on_kicked)
        client.on(END, self._on_end)
        client.on(ERROR, self._on_error)
        return client

    def activate(self) -> None:
        """Build and attach the combat components (normally on first spawn)."""
        if self.closed:
            raise SessionError(f"session {self.username} has been torn down")
        if self.active or self.client is None:
            return

        client = self.client
        preset = self.preset
        reporter = self.reporter

        self.scheduler = EngagementScheduler(
            client,
            self.timers,
            preset,
            reporter,
            max_scan_distance=self.config.max_scan_distance,
            rng=self._rng,
        )
        self._components.append(self.scheduler)

        advanced = preset.advanced
        if advanced is not None:
            self.movement = AdvancedMovementController(client, self.timers, advanced, reporter, rng=self._rng)
            self._components.append(self.movement)

        if preset.manage_gear or advanced is not None:
            tables = self._tables or load_equipment_tables()
            if preset.manage_gear:
                self.gear = GearEngine(
                    client,
                    self.timers,
                    GearOptimizer(client, tables, reporter),
                    reporter,
                    hold=self._hand_busy,
                )
            if advanced is not None:
                self.healing = HealingStateMachine(
                    client,
                    self.timers,
                    advanced,
                    tables,
                    reporter,
                    request_gear_pass=self.gear.request_pass_later if self.gear is not None else None,
                )
                self._components.append(self.healing)
            if self.gear is not None:
                # Attached last: attaching requests the initial gear pass.
                self._components.append(self.gear)

        for component in self._components:
            component.attach()
        self.active = True

    def _hand_busy(self) -> bool:
        return self.healing is not None and self.healing.hand_busy

    def teardown(self) -> None:
        """Detach all listeners and cancel all timers. Idempotent."""
        if self.closed:
            return
        self.closed = True
        self.active = False

        for component in reversed(self._components):
            component.detach()
        self.timers.cancel_all()

        client = self.client
        if client is not None:
            client.off(SPAWN, self._on_spawn)
            client.off(KICKED, self._on_kicked)
            client.off(END, self._on_end)
            client.off(ERROR, self._on_error)

        callbacks, self._done_callbacks = self._done_callbacks, []
        for fn in callbacks:
            fn(self)

    def quit(self, reason: str = "disconnect.quitting") -> None:
        """Close the connection; teardown follows even if no "end" arrives."""
        client = self.client
        if client is not None and not self.closed:
            client.quit(reason)
        self.teardown()

    # ------------------------------------------------------------------
    # Client lifecycle events
    # ------------------------------------------------------------------

    def _on_spawn(self, *_: object) -> None:
        # Only the first spawn activates; later ones are respawns.
        if self.client is not None:
            self.client.off(SPAWN, self._on_spawn)
        self.activate()
        server = self.config.server
        self.log.info("Connected to %s:%s in %s mode.", server.host, server.port, self.preset.name)
        emit_session_connected(self.reporter.bus, self.username, str(server), self.preset.name)

    def _on_kicked(self, reason: object = None, *_: object) -> None:
        self.log.warning("Kicked: %s", reason)
        emit_session_kicked(self.reporter.bus, self.username, str(reason))

    def _on_end(self, reason: object = None, *_: object) -> None:
        self.log.info("Disconnected from server.")
        emit_session_ended(self.reporter.bus, self.username, None if reason is None else str(reason))
        self.teardown()

    def _on_error(self, message: object = None, *_: object) -> None:
        self.log.error("Encountered error: %s", message)
        emit_session_error(self.reporter.bus, self.username, str(message))


def create_session(
    index: int,
    config: RunConfig,
    *,
    connection_factory: ConnectionFactory,
    timer_host: TimerHost,
    bus: Optional[EventBus] = None,
    tables: Optional[EquipmentTables] = None,
    rng: Optional[random.Random] = None,
) -> BotSession:
    """Create the session for bot number `index` and start connecting it."""
    session = BotSession(
        index,
        config,
        connection_factory,
        timer_host,
        bus=bus,
        tables=tables,
        rng=rng,
    )
    session.connect()
    return session
