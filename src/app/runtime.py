# src/app/runtime.py
"""
Asyncio runtime for a group of bot sessions.

    run_bots(config, factory)
      -> session 0 at t=0, session 1 at t=stagger, ...
      -> returns once every session has ended

Sessions are independent: one failing to connect or dropping does not
affect the others. Cancelling run_bots (Ctrl+C) quits every live session.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import List, Optional

from bot_core.net.client import ConnectionFactory
from bot_core.timers import AsyncioTimerHost, TimerHost, ms
from combat.session import BotSession, create_session
from env.schema import EquipmentTables, RunConfig
from monitoring.bus import EventBus

log = logging.getLogger(__name__)


class BotRuntime:
    """Owns the sessions of one run and tracks when all of them are done."""

    def __init__(
        self,
        config: RunConfig,
        connection_factory: ConnectionFactory,
        *,
        timer_host: Optional[TimerHost] = None,
        bus: Optional[EventBus] = None,
        tables: Optional[EquipmentTables] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self._factory = connection_factory
        self._timer_host = timer_host
        self.bus = bus if bus is not None else EventBus()
        self._tables = tables
        self._rng = rng or random.Random()

        self.sessions: List[BotSession] = []
        self.failed_starts = 0
        self._remaining = config.bot_count
        self._finished: Optional["asyncio.Future[None]"] = None

    def start_session(self, index: int) -> Optional[BotSession]:
        """Create and connect bot number `index`; None if connecting failed."""
        host = self._timer_host or AsyncioTimerHost()
        try:
            session = create_session(
                index,
                self.config,
                connection_factory=self._factory,
                timer_host=host,
                bus=self.bus,
                tables=self._tables,
                rng=self._rng,
            )
        except Exception:
            log.exception("Failed to start bot %d", index + 1)
            self.failed_starts += 1
            self._mark_done()
            return None
        self.sessions.append(session)
        session.add_done_callback(lambda _session: self._mark_done())
        return session

    def _mark_done(self) -> None:
        self._remaining -= 1
        if self._remaining <= 0 and self._finished is not None and not self._finished.done():
            self._finished.set_result(None)

    def quit_all(self, reason: str = "disconnect.quitting") -> None:
        for session in list(self.sessions):
            session.quit(reason)

    async def run(self) -> List[BotSession]:
        loop = asyncio.get_running_loop()
        if self._timer_host is None:
            self._timer_host = AsyncioTimerHost(loop)
        self._finished = loop.create_future()
        if self._remaining <= 0:
            self._finished.set_result(None)

        stagger_s = ms(self.config.spawn_stagger_ms)
        starters = [
            loop.call_later(stagger_s * index, self.start_session, index)
            for index in range(self.config.bot_count)
        ]
        try:
            await self._finished
        finally:
            for handle in starters:
                handle.cancel()
            self.quit_all()
        return self.sessions


async def run_bots(
    config: RunConfig,
    connection_factory: ConnectionFactory,
    *,
    bus: Optional[EventBus] = None,
    tables: Optional[EquipmentTables] = None,
    rng: Optional[random.Random] = None,
) -> List[BotSession]:
    """Spawn config.bot_count staggered sessions and wait for all of them to end."""
    runtime = BotRuntime(config, connection_factory, bus=bus, tables=tables, rng=rng)
    log.info(
        "Starting %d bot(s) against %s (%s).",
        config.bot_count,
        config.server,
        config.preset.name,
    )
    return await runtime.run()
