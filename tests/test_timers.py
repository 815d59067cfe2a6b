#tests/test_timers.py
"""
Tests for bot_core.timers.TimerGroup on the ManualTimerHost virtual clock,
plus one AsyncioTimerHost smoke check.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import List

from bot_core.testing.fakes import Gate, ManualTimerHost
from bot_core.timers import AsyncioTimerHost, TimerGroup, ms


def test_call_later_fires_in_time_order():
    host = ManualTimerHost()
    group = TimerGroup(host)
    fired: List[str] = []

    group.call_later(0.3, fired.append, "late")
    group.call_later(0.1, fired.append, "early")
    assert group.pending_count() == 2

    host.advance(0.2)
    assert fired == ["early"]
    assert group.pending_count() == 1

    host.advance(0.2)
    assert fired == ["early", "late"]
    assert group.pending_count() == 0


def test_call_every_first_run_after_one_interval():
    host = ManualTimerHost()
    group = TimerGroup(host)
    ticks: List[float] = []

    group.call_every(ms(450), lambda: ticks.append(host.now()))
    host.advance(0.44)
    assert ticks == []

    host.advance(1.0)
    assert len(ticks) == 3
    assert ticks[0] == 0.45


def test_cancel_single_handle():
    host = ManualTimerHost()
    group = TimerGroup(host)
    fired: List[int] = []

    handle = group.call_later(0.1, fired.append, 1)
    group.cancel(handle)
    group.cancel(None)
    host.advance(1.0)

    assert fired == []
    assert group.pending_count() == 0


def test_cancel_all_closes_the_group():
    host = ManualTimerHost()
    group = TimerGroup(host)
    fired: List[str] = []

    group.call_later(0.1, fired.append, "once")
    group.call_every(0.1, lambda: fired.append("tick"))
    group.cancel_all()

    assert group.closed
    assert group.pending_count() == 0

    # Refused after close.
    group.call_later(0.1, fired.append, "after")
    host.advance(1.0)
    assert fired == []
    assert host.pending_timers() == 0


def test_spawn_runs_to_completion_and_forgets_task():
    host = ManualTimerHost()
    group = TimerGroup(host)
    done: List[bool] = []

    async def work() -> None:
        done.append(True)

    group.spawn(work())
    assert done == [True]
    assert group.pending_count() == 0


def test_spawned_task_suspended_on_gate_is_cancelled():
    host = ManualTimerHost()
    group = TimerGroup(host)
    gate = Gate()
    steps: List[str] = []

    async def work() -> None:
        steps.append("start")
        await gate
        steps.append("resumed")

    group.spawn(work())
    assert steps == ["start"]
    assert group.pending_count() == 1

    group.cancel_all()
    gate.open()
    host.run_ready()
    assert steps == ["start"]


def test_gate_resumes_on_advance():
    host = ManualTimerHost()
    gate = Gate()
    steps: List[str] = []

    async def work() -> None:
        await gate
        steps.append("resumed")

    host.spawn(work())
    host.advance(0.1)
    assert steps == []

    gate.open()
    host.advance(0.1)
    assert steps == ["resumed"]


def test_callback_errors_are_collected():
    host = ManualTimerHost()
    group = TimerGroup(host)

    def broken() -> None:
        raise RuntimeError("boom")

    group.call_later(0.1, broken)
    host.advance(0.2)
    assert len(host.errors) == 1


def test_asyncio_timer_host_smoke():
    async def scenario() -> List[str]:
        group = TimerGroup(AsyncioTimerHost())
        fired: List[str] = []
        group.call_later(0.01, fired.append, "later")
        handle = group.call_every(0.01, lambda: fired.append("tick"))
        await asyncio.sleep(0.035)
        group.cancel(handle)
        group.cancel_all()
        return fired

    fired = asyncio.run(scenario())
    assert "later" in fired
    assert fired.count("tick") >= 1


def test_task_cancelled_before_first_step_closes_its_coroutine():
    steps: List[str] = []

    async def aim() -> None:
        steps.append("ran")

    async def scenario():
        group = TimerGroup(AsyncioTimerHost())
        coro = aim()
        task = group.spawn(coro, name="aim")
        group.cancel_all()
        await asyncio.sleep(0)
        return coro, task

    coro, task = asyncio.run(scenario())
    assert steps == []
    assert task.cancelled()
    assert inspect.getcoroutinestate(coro) == inspect.CORO_CLOSED


def test_cancel_single_task_before_first_step_closes_its_coroutine():
    async def aim() -> None:
        await asyncio.sleep(1.0)

    async def scenario():
        group = TimerGroup(AsyncioTimerHost())
        coro = aim()
        task = group.spawn(coro)
        group.cancel(task)
        await asyncio.sleep(0)
        return coro, group

    coro, group = asyncio.run(scenario())
    assert inspect.getcoroutinestate(coro) == inspect.CORO_CLOSED
    assert group.pending_count() == 0
