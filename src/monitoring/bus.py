# per-bot routing bus for monitoring events
"""
In-process bus carrying MonitoringEvents from bot sessions to the
dashboard, the JSONL logger and developer tools.

Sessions publish from the asyncio thread while the dashboard reads from
its own thread, so the subscriber table is guarded by a lock. A subscriber
either hears every bot or only the bot whose username it registered with
(events are matched on `correlation_id`).
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable, List, Optional, Tuple

from .events import MonitoringEvent

log = logging.getLogger(__name__)

Subscriber = Callable[[MonitoringEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: List[Tuple[Subscriber, Optional[str]]] = []
        self._lock = Lock()

    def subscribe(self, fn: Subscriber, username: Optional[str] = None) -> None:
        """Deliver events to `fn`; with `username`, only that bot's events."""
        with self._lock:
            self._subscribers.append((fn, username))

    def unsubscribe(self, fn: Subscriber) -> None:
        with self._lock:
            self._subscribers = [entry for entry in self._subscribers if entry[0] != fn]

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: MonitoringEvent) -> None:
        """
        Hand `event` to every matching subscriber, in subscription order.

        Delivery runs outside the lock so a subscriber may (un)subscribe
        from inside its callback. A subscriber that raises is logged and
        the remaining ones still receive the event.
        """
        with self._lock:
            targets = [
                fn
                for fn, username in self._subscribers
                if username is None or username == event.correlation_id
            ]

        for fn in targets:
            try:
                fn(event)
            except Exception:
                log.exception("Monitoring subscriber %r failed on %s", fn, event.event_type.name)
