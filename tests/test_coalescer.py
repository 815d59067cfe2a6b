#tests/test_coalescer.py
"""Tests for combat.coalescer.RequestCoalescer."""

from __future__ import annotations

from typing import List

from bot_core.testing.fakes import Gate, ManualTimerHost
from bot_core.timers import TimerGroup
from combat.coalescer import RequestCoalescer


def _setup(operation):
    host = ManualTimerHost()
    group = TimerGroup(host)
    return host, group, RequestCoalescer(group, operation, name="test")


def test_burst_of_requests_runs_once():
    runs: List[float] = []

    async def op() -> None:
        runs.append(0.0)

    host, _group, coalescer = _setup(op)

    assert coalescer.request() is True
    assert coalescer.request() is False
    assert coalescer.request() is False
    assert coalescer.busy

    host.advance(0.0)
    assert len(runs) == 1
    assert coalescer.runs == 1
    assert coalescer.dropped == 2
    assert not coalescer.busy

    # Free again once the run completed.
    assert coalescer.request() is True
    host.advance(0.0)
    assert len(runs) == 2


def test_requests_dropped_while_operation_in_flight():
    gate = Gate()
    runs: List[int] = []

    async def op() -> None:
        runs.append(1)
        await gate

    host, _group, coalescer = _setup(op)
    coalescer.request()
    host.advance(0.0)
    assert coalescer.busy

    assert coalescer.request() is False
    gate.open()
    host.advance(0.0)
    assert not coalescer.busy
    assert runs == [1]


def test_request_later_is_delayed():
    runs: List[float] = []
    host = ManualTimerHost()

    async def op() -> None:
        runs.append(host.now())

    group = TimerGroup(host)
    coalescer = RequestCoalescer(group, op)
    coalescer.request_later(450)

    host.advance(0.4)
    assert runs == []
    host.advance(0.1)
    assert runs == [0.45]


def test_operation_error_goes_to_handler_and_clears_busy():
    errors: List[BaseException] = []

    async def op() -> None:
        raise ValueError("nope")

    host = ManualTimerHost()
    group = TimerGroup(host)
    coalescer = RequestCoalescer(group, op, on_error=errors.append)
    coalescer.request()
    host.advance(0.0)

    assert len(errors) == 1
    assert isinstance(errors[0], ValueError)
    assert not coalescer.busy
    assert host.errors == []


def test_closed_group_refuses_requests():
    async def op() -> None:
        return None

    _host, group, coalescer = _setup(op)
    group.cancel_all()
    assert coalescer.request() is False
    assert not coalescer.busy
