# src/cli/main.py
"""
Command-line entry point: `kitpvp-bots -s <host[:port]> [options]`.

Difficulty flags are last-wins; a bare `-s` (no value, or followed by
another option) selects the easy tier, while `-s <value>` sets the server.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from app.logging_config import configure_logging
from app.runtime import run_bots
from bot_core.net.ipc import ipc_connection_factory
from env.loader import get_preset, load_runtime_profile, parse_server_address
from env.schema import ConfigError, RunConfig
from monitoring.bus import EventBus
from monitoring.dashboard_tui import start_dashboard_in_background
from monitoring.logger import JsonFileLogger

log = logging.getLogger(__name__)

_EASY = "easy"
_HARD = "hard"
_GODLIKE = "godlike"


class _ArgumentParser(argparse.ArgumentParser):
    """Raise ConfigError instead of exiting so main() owns the exit code."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ConfigError(message)


class _ServerOrEasy(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):  # type: ignore[override]
        if values is None:
            namespace.preset = _EASY
        else:
            namespace.server = values


def _bot_count(raw: str) -> int:
    try:
        value = int(raw, 10)
    except ValueError:
        raise argparse.ArgumentTypeError("The number of bots must be a positive integer.")
    if value <= 0:
        raise argparse.ArgumentTypeError("The number of bots must be a positive integer.")
    return value


def build_arg_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="kitpvp-bots",
        description="Spawn autonomous KitPvP combat bots against a server.",
        add_help=False,
    )
    parser.add_argument(
        "-s",
        dest="server",
        nargs="?",
        action=_ServerOrEasy,
        metavar="HOST[:PORT]",
        help="Server address; used alone, selects easy difficulty.",
    )
    parser.add_argument("--server", dest="server", metavar="HOST[:PORT]", help="Alternative way to give the server.")
    parser.add_argument("-h", "--hard", dest="preset", action="store_const", const=_HARD, help="Hard difficulty.")
    parser.add_argument(
        "-g",
        "--godlike",
        dest="preset",
        action="store_const",
        const=_GODLIKE,
        help="Godlike difficulty with advanced combat routines.",
    )
    parser.add_argument("-b", "--bots", dest="bots", type=_bot_count, default=1, help="Number of bots (default: 1).")
    parser.add_argument("--dashboard", action="store_true", help="Show the live terminal dashboard.")
    parser.add_argument(
        "--events-log",
        nargs="?",
        const="",
        default=None,
        metavar="PATH",
        help="Write monitoring events as JSON lines (default path from runtime.yaml).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level (default: INFO).",
    )
    parser.add_argument("--help", "-?", dest="show_help", action="store_true", help="Show this help message.")
    parser.set_defaults(preset=None)
    return parser


def build_run_config(argv: Sequence[str]) -> RunConfig:
    """Parse argv (without the program name) into a RunConfig."""
    args = build_arg_parser().parse_args(list(argv))
    return _run_config_from_args(args)


def _run_config_from_args(args: argparse.Namespace) -> RunConfig:
    if not args.server:
        raise ConfigError("A server address is required. Use -s <host[:port]> to provide one.")
    profile = load_runtime_profile()
    return RunConfig(
        server=parse_server_address(args.server, profile.default_port),
        preset=get_preset(args.preset),
        bot_count=args.bots,
        max_scan_distance=profile.max_scan_distance,
        username_prefix=profile.username_prefix,
        spawn_stagger_ms=profile.spawn_stagger_ms,
    )


def _events_log_path(raw: Optional[str]) -> Optional[Path]:
    if raw is None:
        return None
    if raw:
        return Path(raw)
    default = load_runtime_profile().events_log
    return Path(default) if default else None


def run(config: RunConfig, *, dashboard: bool = False, events_log: Optional[Path] = None) -> None:
    """Run the bots until they all disconnect or Ctrl+C."""
    profile = load_runtime_profile()
    bus = EventBus()
    file_logger = JsonFileLogger(events_log, bus) if events_log is not None else None
    tui = None
    if dashboard:
        tui, _thread = start_dashboard_in_background(bus)

    factory = ipc_connection_factory(profile.bridge.host, profile.bridge.port)
    try:
        asyncio.run(run_bots(config, factory, bus=bus))
    except KeyboardInterrupt:
        log.info("Interrupted; all bots disconnected.")
    finally:
        if tui is not None:
            tui.stop()
        if file_logger is not None:
            file_logger.close()
            log.info("Wrote %d monitoring event(s) to %s", file_logger.written, file_logger.path)


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_arg_parser()
    try:
        args = parser.parse_args(argv)
        if args.show_help:
            parser.print_help()
            return 0
        config = _run_config_from_args(args)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    configure_logging(args.log_level)
    run(config, dashboard=args.dashboard, events_log=_events_log_path(args.events_log))
    return 0


if __name__ == "__main__":
    sys.exit(main())
