#tests/test_ipc_client.py
"""
Tests for bot_core.net.ipc.IpcGameClient using in-memory streams.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

from bot_core.net import ipc
from bot_core.net.client import END, ERROR, HEALTH, INVENTORY_UPDATE, KICKED, PLAYER_COLLECT, SPAWN, ConnectOptions
from bot_core.net.ipc import IpcConfig, IpcGameClient, ipc_connection_factory
from bot_core.types import ITEM_NOT_IN_INVENTORY, Entity, Item, Vec3


class MemoryWriter:
    """Minimal StreamWriter stand-in that records written lines."""

    def __init__(self) -> None:
        self.buffer = bytearray()
        self.closed = False

    def write(self, data: bytes) -> None:
        self.buffer.extend(data)

    async def drain(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    def messages(self) -> List[Dict[str, Any]]:
        return [json.loads(line) for line in self.buffer.decode("utf-8").splitlines() if line]


def _client(timeout: float = 1.0):
    client = IpcGameClient(
        ConnectOptions(host="localhost", port=25565, username="KitPvPBot_1_5"),
        IpcConfig(host="127.0.0.1", port=7450, request_timeout_s=timeout),
    )
    writer = MemoryWriter()
    client.attach_writer(writer)  # type: ignore[arg-type]
    return client, writer


def _line(msg_type: str, **payload: Any) -> bytes:
    return json.dumps({"type": msg_type, "payload": payload}).encode("utf-8") + b"\n"


# ---------------------------------------------------------------------------
# World view
# ---------------------------------------------------------------------------


def test_world_updates_build_local_view():
    client, _writer = _client()
    client.handle_line(_line("self", entity_id=1, x=0, y=64, z=0))
    client.handle_line(_line("player", username="Steve", entity_id=7, x=3, y=64, z=4))
    client.handle_line(_line("player", username="Hidden", entity_id=None))

    assert client.entity == Entity(1, Vec3(0.0, 64.0, 0.0))
    steve = client.players()["Steve"]
    assert steve.entity is not None
    assert steve.entity.position == Vec3(3.0, 64.0, 4.0)
    assert client.players()["Hidden"].entity is None

    # Position updates move the same entity object.
    entity = steve.entity
    client.handle_line(_line("player", username="Steve", entity_id=7, x=5, y=64, z=4))
    assert client.players()["Steve"].entity is entity
    assert entity.position.x == 5.0

    client.handle_line(_line("engagement", target=7))
    assert client.engagement_target is entity

    client.handle_line(_line("entity_gone", entity_id=7))
    assert client.players()["Steve"].entity is None
    assert client.engagement_target is None

    client.handle_line(_line("player_left", username="Steve"))
    assert "Steve" not in client.players()


def test_inventory_and_events_are_forwarded():
    client, _writer = _client()
    seen: List[Any] = []
    client.on(INVENTORY_UPDATE, lambda slot: seen.append(("inv", slot)))
    client.on(HEALTH, lambda: seen.append(("health", client.health)))
    client.on(SPAWN, lambda: seen.append(("spawn",)))
    client.on(KICKED, lambda reason: seen.append(("kicked", reason)))
    client.on(PLAYER_COLLECT, lambda collector, collected: seen.append(("collect", collector)))

    client.handle_line(_line("self", entity_id=1, x=0, y=64, z=0))
    client.handle_line(_line(
        "inventory",
        items=[{"name": "iron_sword", "slot": 36}, {"name": "mushroom_stew", "slot": 37, "count": 1}],
        equipment={"head": {"name": "iron_helmet", "slot": 5}, "hand": None},
    ))
    client.handle_line(_line("set_slot", slot=38, item={"name": "golden_apple", "count": 3}))
    client.handle_line(_line("set_slot", slot=36, item=None))
    client.handle_line(_line("health", health=11.5))
    client.handle_line(_line("spawn"))
    client.handle_line(_line("kicked", reason="flying"))
    client.handle_line(_line("collect", collector=1, collected=99))

    assert [item.name for item in client.inventory_items()] == ["mushroom_stew", "golden_apple"]
    assert client.inventory_items()[1] == Item("golden_apple", 38, 3)
    assert client.equipped_item("head") == Item("iron_helmet", 5)
    assert client.equipped_item("hand") is None
    assert client.health == 11.5
    assert seen == [
        ("inv", None),
        ("inv", 38),
        ("inv", 36),
        ("health", 11.5),
        ("spawn",),
        ("kicked", "flying"),
        ("collect", client.entity),
    ]


def test_malformed_lines_are_ignored():
    client, _writer = _client()
    client.handle_line(b"not json\n")
    client.handle_line(b"[1, 2]\n")
    client.handle_line(b'{"type": 5}\n')
    client.handle_line(b"\n")
    client.handle_line(_line("unknown_thing", a=1))
    assert client.entity is None
    assert not client.closed


def test_bad_payloads_are_dropped_and_later_updates_apply():
    client, _writer = _client()
    client.handle_line(_line("self", entity_id=1, x=0, y=64, z=0))
    client.handle_line(_line("player"))
    client.handle_line(_line("set_slot", slot="offhand", item={"name": "shield"}))
    client.handle_line(_line("engagement", target=[7]))
    client.handle_line(_line("reply", id=None, ok=True))
    client.handle_line(_line("health", health=7.0))

    assert not client.closed
    assert client.players() == {}
    assert client.inventory_items() == []
    assert client.health == 7.0


def test_run_loop_survives_bad_payload(monkeypatch):
    writer = MemoryWriter()
    seen: List[Any] = []

    async def scenario():
        reader = asyncio.StreamReader()
        reader.feed_data(_line("self", entity_id=3, x=1, y=70, z=1))
        reader.feed_data(_line("player"))
        reader.feed_data(_line("health", health=9.0))

        async def fake_open_connection(host, port):
            return reader, writer

        monkeypatch.setattr(ipc.asyncio, "open_connection", fake_open_connection)
        client = ipc_connection_factory("127.0.0.1", 7450)(
            ConnectOptions(host="localhost", port=25565, username="KitPvPBot_1_3")
        )
        client.on(HEALTH, lambda: seen.append(("health", client.health)))
        client.on(END, lambda reason: seen.append(("end", reason)))
        for _ in range(5):
            await asyncio.sleep(0)
        still_open = not client.closed
        reader.feed_eof()
        await client.start()
        return still_open

    assert asyncio.run(scenario())
    assert seen == [("health", 9.0), ("end", "connection closed")]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def test_commands_are_written_as_json_lines():
    client, writer = _client()
    target = Entity(7, Vec3(1.0, 64.0, 0.0))

    assert client.attack(target).success
    assert client.engagement_target is target
    assert client.set_control_state("sprint", True).success
    assert client.stop_engagement().success
    assert client.engagement_target is None

    ops = [(m["op"], m["payload"]) for m in writer.messages()]
    assert ops == [
        ("attack", {"entity_id": 7}),
        ("control", {"key": "sprint", "active": True}),
        ("stop_attack", {}),
    ]
    ids = [m["id"] for m in writer.messages()]
    assert len(set(ids)) == 3


def test_equip_waits_for_reply():
    async def scenario():
        client, writer = _client()
        client.handle_message("inventory", {"items": [{"name": "diamond_sword", "slot": 36}]})
        item = client.inventory_items()[0]

        task = asyncio.ensure_future(client.equip(item, "hand"))
        await asyncio.sleep(0)
        request = writer.messages()[-1]
        assert request["op"] == "equip"
        assert request["payload"] == {"slot": 36, "name": "diamond_sword", "destination": "hand"}

        client.handle_message("reply", {"id": request["id"], "ok": True})
        return await task

    result = asyncio.run(scenario())
    assert result.success


def test_rejected_reply_becomes_failed_result():
    async def scenario():
        client, writer = _client()
        task = asyncio.ensure_future(client.look_at(Vec3(1.0, 65.3, 2.0)))
        await asyncio.sleep(0)
        request = writer.messages()[-1]
        client.handle_message("reply", {"id": request["id"], "ok": False, "error": "not_spawned"})
        return request, await task

    request, result = asyncio.run(scenario())
    assert request["payload"] == {"x": 1.0, "y": 65.3, "z": 2.0, "force": True}
    assert not result.success
    assert result.error == "not_spawned"


def test_equip_of_missing_item_fails_without_request():
    async def scenario():
        client, writer = _client()
        result = await client.equip(Item("diamond_sword", 36), "hand")
        return result, writer.messages()

    result, messages = asyncio.run(scenario())
    assert result.error == ITEM_NOT_IN_INVENTORY
    assert messages == []


def test_request_times_out():
    async def scenario():
        client, _writer = _client(timeout=0.01)
        return await client.look_at(Vec3(0.0, 0.0, 0.0))

    result = asyncio.run(scenario())
    assert result.error == "timeout"


def test_disconnect_fails_pending_requests_and_emits_end():
    ended: List[Any] = []

    async def scenario():
        client, _writer = _client()
        client.on(END, ended.append)
        task = asyncio.ensure_future(client.look_at(Vec3(0.0, 0.0, 0.0)))
        await asyncio.sleep(0)
        client.handle_message("end", {"reason": "socketClosed"})
        result = await task
        return client, result

    client, result = asyncio.run(scenario())
    assert result.error == "disconnected"
    assert ended == ["socketClosed"]
    assert client.closed
    assert not client.attack(Entity(2, Vec3(0.0, 0.0, 0.0))).success


def test_quit_sends_quit_and_ends_once():
    client, writer = _client()
    ended: List[Any] = []
    client.on(END, ended.append)

    client.quit("bye")
    client.quit("again")

    assert writer.messages()[-1]["op"] == "quit"
    assert writer.closed
    assert ended == ["bye"]


# ---------------------------------------------------------------------------
# Connection loop
# ---------------------------------------------------------------------------


def test_run_loop_connects_reads_and_ends_on_eof(monkeypatch):
    writer = MemoryWriter()
    seen: List[Any] = []

    async def scenario():
        reader = asyncio.StreamReader()
        reader.feed_data(_line("self", entity_id=3, x=1, y=70, z=1))
        reader.feed_data(_line("spawn"))
        reader.feed_eof()

        async def fake_open_connection(host, port):
            seen.append((host, port))
            return reader, writer

        monkeypatch.setattr(ipc.asyncio, "open_connection", fake_open_connection)
        factory = ipc_connection_factory("127.0.0.1", 7450)
        client = factory(ConnectOptions(host="mc.example.org", port=25566, username="KitPvPBot_2_1"))
        client.on(SPAWN, lambda: seen.append("spawn"))
        client.on(END, lambda reason: seen.append(("end", reason)))
        await client.start()
        return client

    client = asyncio.run(scenario())

    assert seen[0] == ("127.0.0.1", 7450)
    assert "spawn" in seen
    assert seen[-1] == ("end", "connection closed")
    hello = writer.messages()[0]
    assert hello == {
        "op": "connect",
        "id": 0,
        "payload": {"host": "mc.example.org", "port": 25566, "username": "KitPvPBot_2_1"},
    }
    assert client.closed


def test_unreachable_bridge_reports_error_then_end(monkeypatch):
    seen: List[Any] = []

    async def scenario():
        async def refused(host, port):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(ipc.asyncio, "open_connection", refused)
        client = IpcGameClient(
            ConnectOptions(host="localhost", port=25565, username="KitPvPBot_1_1"),
            IpcConfig(host="127.0.0.1", port=7450),
        )
        client.on(ERROR, lambda message: seen.append(("error", message)))
        client.on(END, lambda reason: seen.append(("end", reason)))
        await client.start()

    asyncio.run(scenario())
    assert seen[0] == ("error", "refused")
    assert seen[1][0] == "end"
