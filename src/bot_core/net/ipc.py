# IPC bridge to the external protocol client
# src/bot_core/net/ipc.py
"""
IPC-based game client.

The game protocol itself (handshake, chunks, packet codecs, physics) is
handled by a separate bridge process. This client talks to it over TCP
with one UTF-8 JSON object per line and keeps a small local world view
so the combat layer can read positions, health and inventory without a
round trip.

Outgoing (one bridge connection per bot):

    {"op": "connect", "id": 0, "payload": {"host", "port", "username"}}
    {"op": "<action>", "id": <n>, "payload": {...}}

Incoming:

    {"type": "reply", "payload": {"id": <n>, "ok": bool, "error": str?, ...}}
    {"type": "<world update or event>", "payload": {...}}

World updates (`self`, `health`, `player`, `player_left`, `entity_gone`,
`inventory`, `set_slot`, `equipment`, `engagement`) change the local view
and, where the combat layer cares, are re-emitted as client events.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..timers import log_task_failure
from ..types import ITEM_NOT_IN_INVENTORY, ActionResult, Entity, Item, Player, Vec3
from .client import (
    DEATH,
    END,
    ERROR,
    HEALTH,
    INVENTORY_UPDATE,
    KICKED,
    PHYSICS_TICK,
    PLAYER_COLLECT,
    RESPAWN,
    SPAWN,
    ConnectionFactory,
    ConnectOptions,
    EventHandler,
    EventRegistry,
)

log = logging.getLogger(__name__)

# Bridge events forwarded unchanged (payload ignored).
_PLAIN_EVENTS = {
    "spawn": SPAWN,
    "death": DEATH,
    "respawn": RESPAWN,
    "physics_tick": PHYSICS_TICK,
}


@dataclass
class IpcConfig:
    """Where the bridge process listens."""

    host: str
    port: int
    request_timeout_s: float = 5.0


class IpcGameClient:
    """
    GameClient backed by the bridge process.

    Message format (version 1):
      - Each message is a single line of UTF-8 JSON.
      - Requests carry an integer id; replies echo it in payload["id"].
    """

    def __init__(self, options: ConnectOptions, config: IpcConfig) -> None:
        self.username = options.username
        self._options = options
        self._config = config
        self._events = EventRegistry()

        self._entity: Optional[Entity] = None
        self._health: float = 20.0
        self._players: Dict[str, Player] = {}
        self._inventory: Dict[int, Item] = {}
        self._equipment: Dict[str, Item] = {}
        self._engagement: Optional[Entity] = None

        self._ids = itertools.count(1)
        self._pending: Dict[int, "asyncio.Future[ActionResult]"] = {}
        self._writer: Optional[asyncio.StreamWriter] = None
        self._task: Optional["asyncio.Task[None]"] = None
        self._closed = False

    # ------------------------------------------------------------------
    # World queries
    # ------------------------------------------------------------------

    @property
    def entity(self) -> Optional[Entity]:
        return self._entity

    @property
    def health(self) -> float:
        return self._health

    @property
    def engagement_target(self) -> Optional[Entity]:
        return self._engagement

    @property
    def closed(self) -> bool:
        return self._closed

    def players(self) -> Mapping[str, Player]:
        return self._players

    def inventory_items(self) -> List[Item]:
        return [self._inventory[slot] for slot in sorted(self._inventory)]

    def equipped_item(self, destination: str) -> Optional[Item]:
        return self._equipment.get(destination)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        self._events.on(event, handler)

    def off(self, event: str, handler: EventHandler) -> None:
        self._events.off(event, handler)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def start(self) -> "asyncio.Task[None]":
        """Open the bridge connection in the background (needs a running loop)."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"ipc:{self.username}"
            )
            self._task.add_done_callback(log_task_failure)
        return self._task

    async def _run(self) -> None:
        reason = "connection closed"
        try:
            log.info("IpcGameClient connecting to bridge %s:%d", self._config.host, self._config.port)
            reader, writer = await asyncio.open_connection(self._config.host, self._config.port)
            self.attach_writer(writer)
            self._send("connect", {
                "host": self._options.host,
                "port": self._options.port,
                "username": self._options.username,
            }, msg_id=0)

            while not self._closed:
                line = await reader.readline()
                if not line:
                    break
                self.handle_line(line)
        except OSError as exc:
            reason = f"bridge unreachable: {exc}"
            self._events.emit(ERROR, str(exc))
        finally:
            self._finish(reason)

    def attach_writer(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer

    def quit(self, reason: str = "disconnect.quitting") -> None:
        if self._closed:
            return
        try:
            self._send("quit", {"reason": reason})
        except ConnectionError:
            log.debug("quit: bridge already gone")
        if self._writer is not None:
            self._writer.close()
        self._finish(reason)

    def _finish(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        for fut in self._pending.values():
            if not fut.done():
                fut.set_result(ActionResult.failed("disconnected"))
        self._pending.clear()
        self._engagement = None
        self._entity = None
        self._events.emit(END, reason)

    # ------------------------------------------------------------------
    # Incoming
    # ------------------------------------------------------------------

    def handle_line(self, line: bytes) -> None:
        """Decode a JSON line and dispatch it."""
        line = line.strip()
        if not line:
            return
        try:
            obj = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            log.warning("IpcGameClient failed to decode JSON line: %r", line)
            return
        if not isinstance(obj, dict):
            log.warning("IpcGameClient received non-object message: %r", obj)
            return

        msg_type = obj.get("type")
        payload = obj.get("payload", {})
        if not isinstance(msg_type, str) or not isinstance(payload, dict):
            log.warning("IpcGameClient received malformed message: %r", obj)
            return
        self.handle_message(msg_type, payload)

    def handle_message(self, msg_type: str, payload: Mapping[str, Any]) -> None:
        handler = self._handlers().get(msg_type)
        if handler is not None:
            try:
                handler(payload)
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("IpcGameClient dropped bad %s payload %r: %r", msg_type, payload, exc)
        elif msg_type in _PLAIN_EVENTS:
            self._events.emit(_PLAIN_EVENTS[msg_type])
        else:
            log.debug("IpcGameClient ignoring message type=%s", msg_type)

    def _handlers(self) -> Dict[str, Callable[[Mapping[str, Any]], None]]:
        return {
            "reply": self._on_reply,
            "self": self._on_self,
            "health": self._on_health,
            "player": self._on_player,
            "player_left": self._on_player_left,
            "entity_gone": self._on_entity_gone,
            "inventory": self._on_inventory,
            "set_slot": self._on_set_slot,
            "equipment": self._on_equipment,
            "engagement": self._on_engagement,
            "collect": self._on_collect,
            "kicked": lambda p: self._events.emit(KICKED, p.get("reason")),
            "error": lambda p: self._events.emit(ERROR, p.get("message")),
            "end": lambda p: self._finish(str(p.get("reason", "server closed connection"))),
        }

    def _on_reply(self, payload: Mapping[str, Any]) -> None:
        fut = self._pending.pop(int(payload.get("id", -1)), None)
        if fut is None or fut.done():
            return
        details = {k: v for k, v in payload.items() if k not in ("id", "ok", "error")}
        if payload.get("ok"):
            fut.set_result(ActionResult.ok(**details))
        else:
            fut.set_result(ActionResult.failed(str(payload.get("error") or "rejected"), **details))

    def _on_self(self, payload: Mapping[str, Any]) -> None:
        position = _vec(payload)
        entity_id = int(payload.get("entity_id", -1))
        if self._entity is not None and self._entity.entity_id == entity_id:
            self._entity.position = position
        else:
            self._entity = Entity(entity_id, position, float(payload.get("height", 1.8)))

    def _on_health(self, payload: Mapping[str, Any]) -> None:
        self._health = float(payload.get("health", self._health))
        self._events.emit(HEALTH)

    def _on_player(self, payload: Mapping[str, Any]) -> None:
        username = str(payload["username"])
        player = self._players.setdefault(username, Player(username))
        if payload.get("entity_id") is None:
            player.entity = None
            return
        entity_id = int(payload["entity_id"])
        position = _vec(payload)
        if player.entity is not None and player.entity.entity_id == entity_id:
            player.entity.position = position
        else:
            player.entity = Entity(entity_id, position, float(payload.get("height", 1.8)))

    def _on_player_left(self, payload: Mapping[str, Any]) -> None:
        self._players.pop(str(payload.get("username")), None)

    def _on_entity_gone(self, payload: Mapping[str, Any]) -> None:
        entity_id = int(payload.get("entity_id", -1))
        for player in self._players.values():
            if player.entity is not None and player.entity.entity_id == entity_id:
                player.entity = None
        if self._engagement is not None and self._engagement.entity_id == entity_id:
            self._engagement = None

    def _on_inventory(self, payload: Mapping[str, Any]) -> None:
        self._inventory = {}
        for raw in payload.get("items") or []:
            item = _item(raw)
            if item is not None:
                self._inventory[item.slot] = item
        self._equipment = {}
        for destination, raw in (payload.get("equipment") or {}).items():
            item = _item(raw)
            if item is not None:
                self._equipment[str(destination)] = item
        self._events.emit(INVENTORY_UPDATE, None)

    def _on_set_slot(self, payload: Mapping[str, Any]) -> None:
        slot = int(payload["slot"])
        item = _item(payload.get("item"), slot)
        if item is None:
            self._inventory.pop(slot, None)
        else:
            self._inventory[slot] = item
        self._events.emit(INVENTORY_UPDATE, slot)

    def _on_equipment(self, payload: Mapping[str, Any]) -> None:
        destination = str(payload["destination"])
        item = _item(payload.get("item"))
        if item is None:
            self._equipment.pop(destination, None)
        else:
            self._equipment[destination] = item

    def _on_engagement(self, payload: Mapping[str, Any]) -> None:
        target_id = payload.get("target")
        self._engagement = None if target_id is None else self._find_entity(int(target_id))

    def _on_collect(self, payload: Mapping[str, Any]) -> None:
        collector = self._find_entity(int(payload.get("collector", -1)))
        self._events.emit(PLAYER_COLLECT, collector, payload.get("collected"))

    def _find_entity(self, entity_id: int) -> Optional[Entity]:
        if self._entity is not None and self._entity.entity_id == entity_id:
            return self._entity
        for player in self._players.values():
            if player.entity is not None and player.entity.entity_id == entity_id:
                return player.entity
        return None

    # ------------------------------------------------------------------
    # Outgoing
    # ------------------------------------------------------------------

    def _send(self, op: str, payload: Mapping[str, Any], *, msg_id: Optional[int] = None) -> int:
        """Write one request line; raise ConnectionError when not connected."""
        if self._closed or self._writer is None or self._writer.is_closing():
            raise ConnectionError("IpcGameClient is not connected")
        if msg_id is None:
            msg_id = next(self._ids)
        msg = {"op": op, "id": msg_id, "payload": dict(payload)}
        self._writer.write(json.dumps(msg, separators=(",", ":")).encode("utf-8") + b"\n")
        return msg_id

    def _command(self, op: str, payload: Mapping[str, Any]) -> ActionResult:
        """Fire-and-forget command: success means it was handed to the bridge."""
        try:
            self._send(op, payload)
        except ConnectionError as exc:
            return ActionResult.failed("not_connected", message=str(exc))
        return ActionResult.ok()

    async def _request(self, op: str, payload: Mapping[str, Any]) -> ActionResult:
        """Send a request and wait for the bridge's acknowledgement."""
        fut: "asyncio.Future[ActionResult]" = asyncio.get_running_loop().create_future()
        try:
            msg_id = self._send(op, payload)
        except ConnectionError as exc:
            return ActionResult.failed("not_connected", message=str(exc))
        self._pending[msg_id] = fut
        try:
            if self._writer is not None:
                await self._writer.drain()
            return await asyncio.wait_for(fut, self._config.request_timeout_s)
        except asyncio.TimeoutError:
            return ActionResult.failed("timeout", op=op)
        except ConnectionError as exc:
            return ActionResult.failed("not_connected", message=str(exc))
        finally:
            self._pending.pop(msg_id, None)

    def attack(self, target: Entity) -> ActionResult:
        result = self._command("attack", {"entity_id": target.entity_id})
        if result.success:
            self._engagement = target
        return result

    def stop_engagement(self) -> ActionResult:
        self._engagement = None
        return self._command("stop_attack", {})

    def set_control_state(self, key: str, active: bool) -> ActionResult:
        return self._command("control", {"key": key, "active": bool(active)})

    def activate_item(self) -> ActionResult:
        return self._command("activate_item", {})

    def deactivate_item(self) -> ActionResult:
        return self._command("deactivate_item", {})

    async def equip(self, item: Item, destination: str) -> ActionResult:
        if item.slot not in self._inventory:
            return ActionResult.failed(ITEM_NOT_IN_INVENTORY, item=item.name)
        return await self._request(
            "equip", {"slot": item.slot, "name": item.name, "destination": destination}
        )

    async def look_at(self, position: Vec3, force: bool = True) -> ActionResult:
        return await self._request(
            "look_at", {"x": position.x, "y": position.y, "z": position.z, "force": force}
        )


def _vec(payload: Mapping[str, Any]) -> Vec3:
    return Vec3(float(payload.get("x", 0.0)), float(payload.get("y", 0.0)), float(payload.get("z", 0.0)))


def _item(raw: Any, slot: Optional[int] = None) -> Optional[Item]:
    if not isinstance(raw, Mapping) or not raw.get("name"):
        return None
    return Item(
        name=str(raw["name"]),
        slot=int(raw.get("slot", slot if slot is not None else -1)),
        count=int(raw.get("count", 1)),
    )


def ipc_connection_factory(host: str, port: int, *, request_timeout_s: float = 5.0) -> ConnectionFactory:
    """ConnectionFactory opening one bridge connection per bot."""
    config = IpcConfig(host=host, port=port, request_timeout_s=request_timeout_s)

    def factory(options: ConnectOptions) -> IpcGameClient:
        client = IpcGameClient(options, config)
        client.start()
        return client

    return factory
