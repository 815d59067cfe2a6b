#tests/test_movement.py
"""Tests for combat.movement.AdvancedMovementController."""

from __future__ import annotations

import random

import pytest

from bot_core.net.client import DEATH, PHYSICS_TICK, RESPAWN
from bot_core.testing.fakes import FakeGameClient, Gate, ManualTimerHost
from bot_core.timers import TimerGroup
from bot_core.types import ActionResult, Vec3
from combat.movement import AdvancedMovementController
from combat.reporting import SessionReporter
from env.loader import get_preset


class FixedRoll(random.Random):
    def __init__(self, roll: float) -> None:
        super().__init__(0)
        self.roll = roll

    def random(self) -> float:
        return self.roll


def _controller(client: FakeGameClient, roll: float = 0.9):
    host = ManualTimerHost()
    group = TimerGroup(host)
    controller = AdvancedMovementController(
        client,
        group,
        get_preset("godlike").advanced,
        SessionReporter(client.username),
        rng=FixedRoll(roll),
    )
    return host, group, controller


def _engage(client: FakeGameClient) -> None:
    target = client.add_player("Steve", Vec3(3.0, 64.0, 0.0))
    client.engagement_target = target.entity


def test_strafe_alternates_direction_on_interval():
    client = FakeGameClient()
    _engage(client)
    host, _group, controller = _controller(client)
    controller.attach()

    host.advance(0.65)
    assert controller.direction == -1
    assert client.control_states["left"] is True
    assert client.control_states["right"] is False

    host.advance(0.65)
    assert controller.direction == 1
    assert client.control_states["left"] is False
    assert client.control_states["right"] is True
    assert "jump" not in client.control_states


def test_jump_pulse_is_released():
    client = FakeGameClient()
    _engage(client)
    host, _group, controller = _controller(client, roll=0.1)

    controller.strafe_tick()
    assert client.control_states["jump"] is True

    host.advance(0.21)
    assert client.control_states["jump"] is True
    host.advance(0.02)
    assert client.control_states["jump"] is False


def test_strafe_stops_without_target():
    client = FakeGameClient()
    _host, _group, controller = _controller(client)

    controller.strafe_tick()
    assert client.control_states == {"left": False, "right": False, "jump": False}
    assert controller.direction == 1


@pytest.mark.parametrize("event", [DEATH, RESPAWN])
def test_death_and_respawn_release_movement_keys(event):
    client = FakeGameClient()
    _engage(client)
    _host, _group, controller = _controller(client)
    controller.attach()
    controller.strafe_tick()

    client.emit(event)
    assert client.control_states["left"] is False
    assert client.control_states["right"] is False


def test_aim_targets_upper_body():
    client = FakeGameClient()
    _engage(client)
    _host, _group, controller = _controller(client)
    controller.attach()

    client.emit(PHYSICS_TICK)
    assert client.looks == [Vec3(3.0, 64.0 + 1.3, 0.0)]


def test_no_new_look_while_one_is_in_flight():
    client = FakeGameClient()
    _engage(client)
    client.look_gate = Gate()
    host, _group, controller = _controller(client)
    controller.attach()

    client.emit(PHYSICS_TICK)
    client.emit(PHYSICS_TICK)
    client.emit(PHYSICS_TICK)
    assert len(client.looks) == 1

    client.look_gate.open()
    host.run_ready()
    client.emit(PHYSICS_TICK)
    assert len(client.looks) == 2


def test_look_failures_are_dropped():
    client = FakeGameClient()
    _engage(client)
    client.look_result = ActionResult.failed("not_spawned")
    host, _group, controller = _controller(client)
    controller.attach()

    client.emit(PHYSICS_TICK)
    client.look_result = None
    client.look_error = RuntimeError("socket closed")
    client.emit(PHYSICS_TICK)

    assert controller.looks_failed == 2
    assert host.errors == []

    # Still aiming afterwards.
    client.look_error = None
    client.emit(PHYSICS_TICK)
    assert len(client.looks) == 3


def test_no_aim_without_target():
    client = FakeGameClient()
    _host, _group, controller = _controller(client)
    controller.attach()

    client.emit(PHYSICS_TICK)
    assert client.looks == []
    assert controller.aim_position() is None


def test_detach_cancels_strafe_and_listeners():
    client = FakeGameClient()
    _engage(client)
    host, group, controller = _controller(client)
    controller.attach()
    controller.detach()

    assert group.pending_count() == 0
    assert client.listener_count() == 0
    client.control_log.clear()
    host.advance(5.0)
    assert client.control_log == []
