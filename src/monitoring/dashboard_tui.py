# rich-based TUI dashboard
#src/monitoring/dashboard_tui.py
"""
TUI dashboard for bot monitoring.

A lightweight terminal UI (using `rich`) that subscribes to the monitoring
EventBus and renders one row per bot:

- Connection status and difficulty preset
- Current engagement target
- Last heal (item + health at the time)
- Last equipped item
- Failed action count and the latest error

This runs entirely offline. No web server, no external services.
"""

from __future__ import annotations

import threading
from typing import Any, Dict

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .bus import EventBus
from .events import EventType, MonitoringEvent


# ============================================================
# TUI Dashboard
# ============================================================

class TuiDashboard:
    """
    Live terminal dashboard bound to a monitoring.EventBus.

    It consumes MonitoringEvents and keeps a small in-memory state
    representation, which is rendered periodically via rich.
    """

    def __init__(self, bus: EventBus, console: Console | None = None) -> None:
        self._bus = bus
        self._console = console or Console()
        self._stop = threading.Event()
        self._lock = threading.Lock()

        # username -> row state, in first-seen order
        self._bots: Dict[str, Dict[str, Any]] = {}

        self._bus.subscribe(self._on_event)

    # --------------------------------------------------------
    # Event handler
    # --------------------------------------------------------

    def _row(self, username: str) -> Dict[str, Any]:
        return self._bots.setdefault(
            username,
            {
                "status": "CONNECTING",
                "preset": "-",
                "target": None,
                "last_heal": None,
                "last_gear": None,
                "failures": 0,
                "last_error": None,
            },
        )

    def _on_event(self, event: MonitoringEvent) -> None:
        """
        Update dashboard state based on a MonitoringEvent.
        This should be cheap and non-blocking.
        """
        username = event.correlation_id or event.payload.get("username")
        if not username:
            return

        et = event.event_type
        p = event.payload

        with self._lock:
            row = self._row(username)

            if et == EventType.SESSION_CONNECTED:
                row["status"] = "CONNECTED"
                row["preset"] = p.get("preset", "-")

            elif et == EventType.SESSION_KICKED:
                row["status"] = "KICKED"
                row["last_error"] = p.get("reason")

            elif et == EventType.SESSION_ENDED:
                row["status"] = "ENDED" if row["status"] != "KICKED" else "KICKED"
                row["target"] = None

            elif et == EventType.SESSION_ERROR:
                row["last_error"] = p.get("error")

            elif et == EventType.ENGAGEMENT_STARTED:
                row["target"] = p.get("target")

            elif et == EventType.ENGAGEMENT_STOPPED:
                row["target"] = None

            elif et == EventType.HEAL_STARTED:
                row["last_heal"] = f"{p.get('item')} @ {p.get('health')}"

            elif et == EventType.GEAR_EQUIPPED:
                row["last_gear"] = f"{p.get('slot')}: {p.get('item')}"

            elif et == EventType.ACTION_FAILED:
                row["failures"] += 1
                row["last_error"] = f"{p.get('action')}: {p.get('error')}"

    # --------------------------------------------------------
    # Rendering helpers
    # --------------------------------------------------------

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Copy of the per-bot state (for tests and tools)."""
        with self._lock:
            return {name: dict(row) for name, row in self._bots.items()}

    def _render_table(self) -> Panel:
        table = Table(show_header=True, header_style="bold magenta", expand=True)
        table.add_column("Bot", style="bold")
        table.add_column("Status")
        table.add_column("Preset")
        table.add_column("Target")
        table.add_column("Last Heal")
        table.add_column("Last Gear")
        table.add_column("Fails", justify="right")
        table.add_column("Last Error", overflow="fold")

        status_styles = {
            "CONNECTED": "green",
            "CONNECTING": "yellow",
            "KICKED": "red",
            "ENDED": "dim",
        }

        bots = self.snapshot()
        if not bots:
            table.add_row("<none>", "-", "-", "-", "-", "-", "0", "-")
        for name, row in bots.items():
            status = row["status"]
            style = status_styles.get(status, "white")
            table.add_row(
                name,
                f"[{style}]{status}[/{style}]",
                str(row["preset"]),
                row["target"] or "-",
                row["last_heal"] or "-",
                row["last_gear"] or "-",
                str(row["failures"]),
                row["last_error"] or "-",
            )

        return Panel(table, title="KitPvP Bots", border_style="cyan")

    # --------------------------------------------------------
    # Main loop
    # --------------------------------------------------------

    def run(self, refresh_per_second: float = 4.0) -> None:
        """
        Run the TUI render loop until stop() is called.

        This blocks the current thread. Use a separate thread if needed.
        """
        refresh_delay = 1.0 / max(refresh_per_second, 0.1)
        with Live(self._render_table(), console=self._console, refresh_per_second=refresh_per_second) as live:
            while not self._stop.wait(refresh_delay):
                live.update(self._render_table())

    def stop(self) -> None:
        self._stop.set()
        self._bus.unsubscribe(self._on_event)


def start_dashboard_in_background(bus: EventBus) -> tuple[TuiDashboard, threading.Thread]:
    """
    Start a TuiDashboard in a daemon thread so it never blocks the event loop.
    """
    dashboard = TuiDashboard(bus)
    t = threading.Thread(
        target=dashboard.run,
        kwargs={"refresh_per_second": 4.0},
        name="TuiDashboardThread",
        daemon=True,
    )
    t.start()
    return dashboard, t
