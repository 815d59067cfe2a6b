# bot_core.net package
# src/bot_core/net/__init__.py
"""
Network layer for the bot client boundary.

This package provides:
- GameClient protocol (common interface) and event names
- EventRegistry shared by concrete clients
- IpcGameClient: JSON-lines client for the protocol bridge process
"""

from __future__ import annotations

from .client import (
    ConnectionFactory,
    ConnectOptions,
    EventHandler,
    EventRegistry,
    GameClient,
)
from .ipc import IpcGameClient, ipc_connection_factory

__all__ = [
    "ConnectionFactory",
    "ConnectOptions",
    "EventHandler",
    "EventRegistry",
    "GameClient",
    "IpcGameClient",
    "ipc_connection_factory",
]
