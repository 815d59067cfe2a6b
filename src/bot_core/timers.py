# timer host abstraction over the asyncio loop + per-session timer groups
# src/bot_core/timers.py
"""
Timer scheduling for bot sessions.

Combat components never touch the event loop directly. They schedule work
through a TimerHost:

    now()                          monotonic seconds
    call_later(delay_s, fn, *args) one-shot, cancellable
    call_every(interval_s, fn)     fixed-rate repeat, first run after one interval
    spawn(coro, name=...)          run a coroutine as a task

AsyncioTimerHost implements this on the running asyncio loop. Tests use
bot_core.testing.fakes.ManualTimerHost, which runs on a virtual clock.

A TimerGroup wraps a host for one session: it records every handle it
hands out so teardown can cancel all of them at once, and it refuses new
work after that point.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from typing import Any, Callable, Coroutine, Dict, Optional, Protocol

log = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> Any:
        ...


class TimerHost(Protocol):
    def now(self) -> float:
        ...

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> Cancellable:
        ...

    def call_every(self, interval_s: float, fn: Callable[[], Any]) -> Cancellable:
        ...

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> Cancellable:
        ...


def ms(value: float) -> float:
    """Milliseconds (config units) to seconds (timer units)."""
    return value / 1000.0


class _NullHandle:
    """Handle returned for work refused by a closed TimerGroup."""

    def cancel(self) -> bool:
        return False

    def cancelled(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# asyncio implementation
# ---------------------------------------------------------------------------


class _RepeatingHandle:
    """Fixed-rate repeat on top of loop.call_later."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval_s: float, fn: Callable[[], Any]) -> None:
        self._loop = loop
        self._interval = interval_s
        self._fn = fn
        self._cancelled = False
        self._next_when = loop.time() + interval_s
        self._handle = loop.call_at(self._next_when, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        # Reschedule first so a raising callback does not stop the repeat.
        self._next_when += self._interval
        self._handle = self._loop.call_at(self._next_when, self._run)
        try:
            self._fn()
        except Exception:
            log.exception("Repeating timer callback %r failed", self._fn)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioTimerHost:
    """TimerHost bound to an asyncio event loop (the running one by default)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> Cancellable:
        return self.loop.call_later(max(delay_s, 0.0), _guarded, fn, args)

    def call_every(self, interval_s: float, fn: Callable[[], Any]) -> Cancellable:
        return _RepeatingHandle(self.loop, interval_s, fn)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> Cancellable:
        task = self.loop.create_task(coro, name=name)
        task.add_done_callback(log_task_failure)
        return task


def _guarded(fn: Callable[..., Any], args: tuple) -> None:
    try:
        fn(*args)
    except Exception:
        log.exception("Timer callback %r failed", fn)


def log_task_failure(task: "asyncio.Task[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("Task %s failed", task.get_name(), exc_info=exc)


# ---------------------------------------------------------------------------
# Per-session grouping
# ---------------------------------------------------------------------------


class TimerGroup:
    """
    Records every timer and task created through it.

    cancel_all() cancels everything still pending and closes the group;
    later requests return an already-cancelled handle and never run.
    One-shot handles are forgotten once they fire.
    """

    def __init__(self, host: TimerHost) -> None:
        self._host = host
        self._ids = itertools.count()
        self._live: Dict[int, Cancellable] = {}
        self._coros: Dict[int, Coroutine[Any, Any, Any]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def host(self) -> TimerHost:
        return self._host

    def now(self) -> float:
        return self._host.now()

    def pending_count(self) -> int:
        return len(self._live)

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> Cancellable:
        if self._closed:
            return _NullHandle()
        key = next(self._ids)

        def _fire() -> None:
            self._live.pop(key, None)
            if not self._closed:
                fn(*args)

        handle = self._host.call_later(delay_s, _fire)
        self._live[key] = handle
        return handle

    def call_every(self, interval_s: float, fn: Callable[[], Any]) -> Cancellable:
        if self._closed:
            return _NullHandle()

        def _tick() -> None:
            if not self._closed:
                fn()

        handle = self._host.call_every(interval_s, _tick)
        self._live[next(self._ids)] = handle
        return handle

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> Cancellable:
        if self._closed:
            coro.close()
            return _NullHandle()
        key = next(self._ids)

        async def _run() -> Any:
            try:
                return await coro
            finally:
                self._live.pop(key, None)
                self._coros.pop(key, None)

        # Register before spawning: a host may run the coroutine to
        # completion synchronously.
        self._live[key] = _NullHandle()
        self._coros[key] = coro
        handle = self._host.spawn(_run(), name=name)
        if key in self._live:
            self._live[key] = handle
        return handle

    def cancel(self, handle: Optional[Cancellable]) -> None:
        """Cancel one handle obtained from this group (None is ignored)."""
        if handle is None:
            return
        handle.cancel()
        for key, live in list(self._live.items()):
            if live is handle:
                del self._live[key]
                _close_if_unstarted(self._coros.pop(key, None))

    def cancel_all(self) -> None:
        self._closed = True
        live, self._live = self._live, {}
        coros, self._coros = self._coros, {}
        for handle in live.values():
            handle.cancel()
        for coro in coros.values():
            _close_if_unstarted(coro)


def _close_if_unstarted(coro: Optional[Coroutine[Any, Any, Any]]) -> None:
    # A task cancelled before its first step never awaits the wrapped coroutine.
    if coro is not None and inspect.getcoroutinestate(coro) == inspect.CORO_CREATED:
        coro.close()


__all__ = [
    "AsyncioTimerHost",
    "Cancellable",
    "TimerGroup",
    "TimerHost",
    "log_task_failure",
    "ms",
]
