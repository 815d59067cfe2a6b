#tests/test_runtime.py
"""Tests for app.runtime: staggered session startup and shutdown."""

from __future__ import annotations

import asyncio
import random
from typing import List

from app.runtime import BotRuntime, run_bots
from bot_core.net.client import END, SPAWN, ConnectOptions
from bot_core.testing.fakes import FakeGameClient
from env.loader import get_preset, parse_server_address
from env.schema import RunConfig


class _Factory:
    def __init__(self, fail_index: int = -1) -> None:
        self.clients: List[FakeGameClient] = []
        self.started_at: List[float] = []
        self.fail_index = fail_index
        self.calls = 0

    def __call__(self, options: ConnectOptions) -> FakeGameClient:
        index = self.calls
        self.calls += 1
        if index == self.fail_index:
            raise ConnectionRefusedError("bridge down")
        self.started_at.append(asyncio.get_running_loop().time())
        client = FakeGameClient(options.username)
        self.clients.append(client)
        return client


def _config(bots: int, stagger_ms: int = 20) -> RunConfig:
    return RunConfig(
        server=parse_server_address("localhost"),
        preset=get_preset("easy"),
        bot_count=bots,
        spawn_stagger_ms=stagger_ms,
    )


def test_sessions_are_staggered_and_run_ends_when_all_disconnect():
    factory = _Factory()

    async def scenario():
        task = asyncio.ensure_future(run_bots(_config(3), factory, rng=random.Random(5)))
        await asyncio.sleep(0.1)
        assert len(factory.clients) == 3
        for client in factory.clients:
            client.emit(SPAWN)
        for client in factory.clients:
            client.emit(END, "closed")
        return await asyncio.wait_for(task, 1.0)

    sessions = asyncio.run(scenario())

    assert [s.index for s in sessions] == [0, 1, 2]
    assert [s.username.split("_")[1] for s in sessions] == ["1", "2", "3"]
    assert all(s.closed for s in sessions)
    gaps = [b - a for a, b in zip(factory.started_at, factory.started_at[1:])]
    assert all(gap >= 0.015 for gap in gaps)


def test_failed_start_is_local_to_that_bot():
    factory = _Factory(fail_index=1)

    async def scenario():
        runtime = BotRuntime(_config(3, stagger_ms=5), factory)
        task = asyncio.ensure_future(runtime.run())
        await asyncio.sleep(0.05)
        for client in factory.clients:
            client.emit(END, "closed")
        await asyncio.wait_for(task, 1.0)
        return runtime

    runtime = asyncio.run(scenario())
    assert runtime.failed_starts == 1
    assert len(runtime.sessions) == 2


def test_cancellation_quits_every_session():
    factory = _Factory()

    async def scenario():
        runtime = BotRuntime(_config(2, stagger_ms=5), factory)
        task = asyncio.ensure_future(runtime.run())
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return runtime

    runtime = asyncio.run(scenario())
    assert all(client.quit_reason == "disconnect.quitting" for client in factory.clients)
    assert all(session.closed for session in runtime.sessions)
