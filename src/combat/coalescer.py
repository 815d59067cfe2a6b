# src/combat/coalescer.py
"""
Single-slot request coalescer.

Turns bursts of "please re-evaluate" requests (inventory deltas, pickups,
respawns) into at most one scheduled-or-running operation per owner.
While one is scheduled or in flight, further requests are dropped; the
event that made them is expected to fire again if the work is still
needed. There is no queue.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from bot_core.timers import TimerGroup, ms

log = logging.getLogger(__name__)


class RequestCoalescer:
    def __init__(
        self,
        timers: TimerGroup,
        operation: Callable[[], Awaitable[Any]],
        *,
        name: str = "coalesced",
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self._timers = timers
        self._operation = operation
        self._name = name
        self._on_error = on_error
        self._busy = False
        self.runs = 0
        self.dropped = 0

    @property
    def busy(self) -> bool:
        """True from the accepted request until the operation finishes."""
        return self._busy

    def request(self) -> bool:
        """
        Ask for one run on the next loop turn.

        Returns False when the request collapsed into one already pending.
        """
        if self._busy or self._timers.closed:
            self.dropped += 1
            return False
        self._busy = True
        self._timers.call_later(0, self._start)
        return True

    def request_later(self, delay_ms: float) -> None:
        """Issue request() after a delay (the delay itself is not coalesced)."""
        self._timers.call_later(ms(delay_ms), self.request)

    def _start(self) -> None:
        self._timers.spawn(self._run(), name=self._name)

    async def _run(self) -> None:
        self.runs += 1
        try:
            await self._operation()
        except Exception as exc:
            if self._on_error is None:
                log.exception("%s operation failed", self._name)
            else:
                self._on_error(exc)
        finally:
            self._busy = False
