# src/combat/reporting.py
"""
Per-session log prefixing and monitoring bus access.

Every human-readable line a session writes has the form
`[<username>] <message>`; structured events for the same occurrence go to
the session's EventBus through monitoring.integration.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Tuple

from monitoring.bus import EventBus


class SessionLogAdapter(logging.LoggerAdapter):
    """Prefix every message with the bot's username."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['username']}] {msg}", kwargs


class SessionReporter:
    """Logger adapter + event bus shared by one session's components."""

    def __init__(
        self,
        username: str,
        bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.username = username
        self.bus = bus if bus is not None else EventBus()
        self.log = SessionLogAdapter(
            logger or logging.getLogger("combat.session"),
            {"username": username},
        )
