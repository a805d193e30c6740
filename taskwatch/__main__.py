"""CLI entry point for taskwatch."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from .client import TaskServerClient
from .config import TRANSPORTS, load_config
from .errors import ConfigurationInvalid, SyncError
from .sync import SyncFacade


LOG_LEVELS = {
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

# Third-party loggers that log every request or frame
QUIET_LOGGERS = ("httpx", "httpcore", "websockets")


class JSONFormatter(logging.Formatter):
    """One JSON object per log line, for piping watch output into tools."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    verbose: bool = False, log_level: str | None = None, json_output: bool = False
) -> None:
    """Configure logging to stderr, keeping stdout for completion records.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines.
    """
    if log_level:
        level = LOG_LEVELS.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    logging.basicConfig(level=level, handlers=[handler])

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


async def cmd_watch(args: argparse.Namespace) -> int:
    """Watch for completed tasks and print them as JSON lines."""
    config = load_config(args.config)
    facade = SyncFacade.from_config(config, transport=args.transport)

    target = (
        config.server.api_url
        if facade.transport == "poll"
        else config.server.websocket_url
    )
    print(f"Watching {target} ({facade.transport})", file=sys.stderr)

    received = 0
    facade.start()
    try:
        async for item in facade.completions():
            print(json.dumps(item.to_dict()), flush=True)
            received += 1
            if args.limit and received >= args.limit:
                break
    finally:
        status = facade.status()
        await facade.aclose()
        if status.error_message:
            print(f"Last error: {status.error_message}", file=sys.stderr)

    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check connectivity status."""
    config = load_config(args.config)
    client = TaskServerClient.from_config(config.server)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "transport": config.transport,
        "api_url": config.server.api_url,
        "websocket_url": config.server.websocket_url,
    }

    try:
        health = await client.health()
        status_data["reachable"] = True
        status_data["health"] = health
    except SyncError as e:
        status_data["reachable"] = False
        status_data["error"] = e.message
    finally:
        await client.close()

    if args.json:
        print(json.dumps(status_data, indent=2))
    else:
        print(f"Task Server Status")
        print(f"==================")
        print(f"API: {status_data['api_url']}")
        print(f"WebSocket: {status_data['websocket_url']}")
        print(f"Transport: {status_data['transport']}")
        print()
        if status_data["reachable"]:
            print(f"  Status: Reachable")
            for key, value in status_data["health"].items():
                print(f"  {key}: {value}")
        else:
            print(f"  Status: Not reachable")
            print(f"  Error: {status_data['error']}")

    return 0 if status_data["reachable"] else 1


async def cmd_submit(args: argparse.Namespace) -> int:
    """Submit a task and print its id."""
    config = load_config(args.config)
    client = TaskServerClient.from_config(config.server)

    try:
        task_id = await client.submit(args.data, priority=args.priority)
    except (SyncError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await client.close()

    print(task_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskwatch",
        description="Track asynchronous tasks until they complete",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=list(LOG_LEVELS),
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Print tasks as they complete")
    watch_parser.add_argument(
        "--transport",
        choices=TRANSPORTS,
        default=None,
        help="Override the configured transport",
    )
    watch_parser.add_argument(
        "-n", "--limit",
        type=int,
        default=0,
        help="Exit after this many completed tasks (default: run forever)",
    )
    watch_parser.set_defaults(func=cmd_watch)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check server health")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # Submit command
    submit_parser = subparsers.add_parser("submit", help="Submit a new task")
    submit_parser.add_argument("data", help="Task description")
    submit_parser.add_argument(
        "-p", "--priority",
        type=int,
        default=1,
        help="Priority from 1 to 10 (default: 1)",
    )
    submit_parser.set_defaults(func=cmd_submit)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except ConfigurationInvalid as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
