#src/monitoring/tools.py
"""
Human-facing utilities for inspecting bot runs after the fact.

Provides:

- Bot inspector:
    - Load monitoring events from the JSONL log written by JsonFileLogger.
    - Summarize each bot: connection outcome, engagements, heals,
      equipped gear, failed actions.

- Event tail:
    - Print the last N events, optionally for one bot only.

Usage:

    python -m monitoring.tools inspect-bots --log-path logs/monitoring/events.log
    python -m monitoring.tools tail -n 20 --bot KitPvPBot_1_417
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .events import EventType, MonitoringEvent


JsonDict = Dict[str, Any]


# ============================================================
# Bot inspector
# ============================================================

@dataclass
class BotSummary:
    """
    Human-friendly summary of one bot reconstructed from monitoring logs.
    """
    username: str
    server: Optional[str] = None
    preset: Optional[str] = None
    status: str = "CONNECTING"
    end_reason: Optional[str] = None
    engagements: int = 0
    targets: List[str] = field(default_factory=list)
    heals: Dict[str, int] = field(default_factory=dict)
    gear: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, int] = field(default_factory=dict)
    first_ts: float = 0.0
    last_ts: float = 0.0

    def to_dict(self) -> JsonDict:
        return asdict(self)


def load_monitoring_events(path: Path) -> List[MonitoringEvent]:
    """
    Load MonitoringEvents from a JSONL file produced by JsonFileLogger.

    Lines that are not valid JSON or carry an unknown event type are
    skipped.
    """
    if not path.exists():
        return []

    events: List[MonitoringEvent] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict):
                continue

            try:
                etype = EventType[data["event_type"]]
            except (KeyError, TypeError):
                continue

            events.append(
                MonitoringEvent(
                    ts=data.get("ts", 0.0),
                    module=data.get("module", ""),
                    event_type=etype,
                    message=data.get("message", ""),
                    payload=data.get("payload") or {},
                    correlation_id=data.get("correlation_id"),
                )
            )
    return events


def _username(evt: MonitoringEvent) -> Optional[str]:
    return evt.correlation_id or (evt.payload or {}).get("username")


def summarize_bots(events: Iterable[MonitoringEvent]) -> List[BotSummary]:
    """Fold events into one BotSummary per bot, in first-seen order."""
    summaries: Dict[str, BotSummary] = {}
    for evt in events:
        username = _username(evt)
        if not username:
            continue
        summary = summaries.get(username)
        if summary is None:
            summary = summaries[username] = BotSummary(username=username, first_ts=evt.ts)
        summary.last_ts = evt.ts
        p = evt.payload or {}
        et = evt.event_type

        if et == EventType.SESSION_CONNECTED:
            summary.status = "CONNECTED"
            summary.server = p.get("server")
            summary.preset = p.get("preset")
        elif et == EventType.SESSION_KICKED:
            summary.status = "KICKED"
            summary.end_reason = p.get("reason")
        elif et == EventType.SESSION_ENDED:
            if summary.status != "KICKED":
                summary.status = "ENDED"
                summary.end_reason = p.get("reason")
        elif et == EventType.ENGAGEMENT_STARTED:
            summary.engagements += 1
            target = p.get("target")
            if target and target not in summary.targets:
                summary.targets.append(target)
        elif et == EventType.HEAL_STARTED:
            kind = str(p.get("kind", "unknown"))
            summary.heals[kind] = summary.heals.get(kind, 0) + 1
        elif et == EventType.GEAR_EQUIPPED:
            summary.gear[str(p.get("slot"))] = str(p.get("item"))
        elif et == EventType.ACTION_FAILED:
            action = str(p.get("action", "unknown"))
            summary.failures[action] = summary.failures.get(action, 0) + 1

    return list(summaries.values())


def load_bot_summaries(path: Path) -> List[BotSummary]:
    return summarize_bots(load_monitoring_events(path))


def tail_events(events: List[MonitoringEvent], n: int, bot: Optional[str] = None) -> List[MonitoringEvent]:
    """Last n events, optionally restricted to one bot."""
    if bot is not None:
        events = [evt for evt in events if _username(evt) == bot]
    return events[-n:] if n > 0 else []


# ============================================================
# CLI
# ============================================================

def _cmd_inspect_bots(args: argparse.Namespace) -> None:
    summaries = load_bot_summaries(Path(args.log_path))
    json.dump([s.to_dict() for s in summaries], sys.stdout, indent=2, sort_keys=True)
    print()


def _cmd_tail(args: argparse.Namespace) -> None:
    events = tail_events(load_monitoring_events(Path(args.log_path)), args.n, args.bot)
    for evt in events:
        print(f"{evt.ts:.3f} [{_username(evt) or '-'}] {evt.event_type.name}: {evt.message}")


def build_arg_parser() -> argparse.ArgumentParser:
    """
    Build the monitoring CLI argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="kitpvp-monitor",
        description="Inspect monitoring logs written by kitpvp-bots --events-log.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_bots = sub.add_parser("inspect-bots", help="Summarize every bot found in the log.")
    p_bots.add_argument(
        "--log-path",
        type=str,
        default="logs/monitoring/events.log",
        help="Path to monitoring JSONL log file.",
    )
    p_bots.set_defaults(func=_cmd_inspect_bots)

    p_tail = sub.add_parser("tail", help="Print the most recent events.")
    p_tail.add_argument(
        "--log-path",
        type=str,
        default="logs/monitoring/events.log",
        help="Path to monitoring JSONL log file.",
    )
    p_tail.add_argument("-n", type=int, default=20, help="Number of events to show.")
    p_tail.add_argument("--bot", type=str, default=None, help="Only events for this bot username.")
    p_tail.set_defaults(func=_cmd_tail)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
