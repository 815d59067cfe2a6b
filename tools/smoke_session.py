#!/usr/bin/env python3
"""
tools/smoke_session.py

Minimal harness to sanity-check BotSession wiring.

Default mode:
    - Uses FakeGameClient + ManualTimerHost (no network, virtual clock)
    - Spawns one session at the chosen difficulty
    - Puts an opponent in range, drops health, hands out gear
    - Prints attacks, control states, equips and monitoring events

Real mode (--real):
    - Connects through the IPC bridge configured in config/runtime.yaml
      and runs for a fixed number of seconds.
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure src/ is on sys.path when running as a script
# ---------------------------------------------------------------------------

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# ---------------------------------------------------------------------------
# Imports from the project
# ---------------------------------------------------------------------------

from app.logging_config import configure_logging  # type: ignore[import]
from bot_core.net.client import HEALTH, INVENTORY_UPDATE, SPAWN  # type: ignore[import]
from bot_core.net.ipc import ipc_connection_factory  # type: ignore[import]
from bot_core.testing.fakes import FakeGameClient, ManualTimerHost  # type: ignore[import]
from bot_core.timers import AsyncioTimerHost  # type: ignore[import]
from bot_core.types import Vec3  # type: ignore[import]
from combat.session import create_session  # type: ignore[import]
from env.loader import get_preset, load_runtime_profile, parse_server_address  # type: ignore[import]
from env.schema import RunConfig  # type: ignore[import]
from monitoring.bus import EventBus  # type: ignore[import]
from monitoring.events import MonitoringEvent  # type: ignore[import]


def _print_header(title: str) -> None:
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


def _print_event(event: MonitoringEvent) -> None:
    print(f"  [event] {event.event_type.value}: {event.message} {event.payload}")


def run_fake_mode(preset_name: str) -> None:
    _print_header(f"Fake mode: {preset_name} session on FakeGameClient")

    client = FakeGameClient()
    host = ManualTimerHost()
    bus = EventBus()

    config = RunConfig(server=parse_server_address("localhost"), preset=get_preset(preset_name))
    session = create_session(
        0,
        config,
        connection_factory=lambda _options: client,
        timer_host=host,
        bus=bus,
        rng=random.Random(7),
    )
    bus.subscribe(_print_event, username=session.username)

    client.give("iron_sword")
    client.give("diamond_sword")
    client.give("mushroom_stew")
    client.add_player("Opponent", Vec3(3.0, 64.0, 4.0))
    client.emit(SPAWN)
    client.emit(INVENTORY_UPDATE, None)

    _print_header("Advance 5 s")
    host.advance(5.0)
    print("attacks:", [entity.entity_id for entity in client.attacks])
    print("control states:", client.control_states)
    print("equipment:", {slot: item.name for slot, item in client.equipment.items()})

    _print_header("Health drops to 10")
    client.health = 10.0
    client.emit(HEALTH)
    host.advance(2.0)
    print("heal state:", session.heal_state)
    print("equipment:", {slot: item.name for slot, item in client.equipment.items()})

    session.quit()
    print("pending timers after quit:", session.timers.pending_count())
    if host.errors:
        print("callback errors:", host.errors)

    _print_header("Fake mode completed")


async def _run_real(preset_name: str, server: str, seconds: float) -> None:
    profile = load_runtime_profile()
    config = RunConfig(
        server=parse_server_address(server, profile.default_port),
        preset=get_preset(preset_name),
        username_prefix=profile.username_prefix,
    )
    bus = EventBus()
    session = create_session(
        0,
        config,
        connection_factory=ipc_connection_factory(profile.bridge.host, profile.bridge.port),
        timer_host=AsyncioTimerHost(),
        bus=bus,
    )
    bus.subscribe(_print_event, username=session.username)
    try:
        await asyncio.sleep(seconds)
    finally:
        session.quit()


def run_real_mode(preset_name: str, server: str, seconds: float) -> None:
    _print_header(f"Real mode: {preset_name} session against {server}")
    asyncio.run(_run_real(preset_name, server, seconds))


def main() -> None:
    parser = argparse.ArgumentParser(description="Smoke test for a single bot session.")
    parser.add_argument("--preset", default="godlike", help="Difficulty tier (default: godlike)")
    parser.add_argument("--real", metavar="HOST[:PORT]", help="Connect through the IPC bridge instead")
    parser.add_argument("--seconds", type=float, default=30.0, help="How long to stay connected in real mode")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    args = parser.parse_args()

    configure_logging("DEBUG" if args.debug else "INFO")

    if args.real:
        run_real_mode(args.preset, args.real, args.seconds)
    else:
        run_fake_mode(args.preset)


if __name__ == "__main__":
    main()
