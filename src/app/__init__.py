# src/app/__init__.py
"""Process-level wiring: logging setup and the asyncio bot runtime."""

from .logging_config import configure_logging
from .runtime import BotRuntime, run_bots

__all__ = ["BotRuntime", "configure_logging", "run_bots"]
