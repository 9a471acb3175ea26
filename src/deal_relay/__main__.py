"""CLI entry point for Deal Relay.

This module runs one batch of deal events through the filter and posts the
resulting notifications to the configured chat webhook.

Usage:
    python -m deal_relay [options] [EVENTS_FILE]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.config
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

from pydantic import ValidationError

from deal_relay import __version__
from deal_relay.config import Settings, clear_settings_cache, get_settings
from deal_relay.events.errors import MalformedEventError
from deal_relay.events.models import IncomingEvent
from deal_relay.relay import Relay

if TYPE_CHECKING:
    from typing import TextIO

# Application info
APP_NAME = "Deal Relay"
APP_VERSION = __version__

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="deal-relay",
        description="Filter CRM deal events and post notifications to a chat webhook.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m deal_relay events.json             Relay a batch of events
  cat events.json | python -m deal_relay -     Read the batch from stdin
  python -m deal_relay --config-check          Validate config and exit
  python -m deal_relay --dry-run events.json   Run without posting
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )

    parser.add_argument(
        "events",
        nargs="?",
        default="-",
        help="JSON file with a list of {id, payload} events, or - for stdin",
    )

    parser.add_argument(
        "--config-check",
        action="store_true",
        help="Validate configuration and exit without relaying events",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level (default: from settings)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Filter and render messages but don't post them",
    )

    return parser


def configure_logging(level: str) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if level == "DEBUG" else "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        # Quieter logging for noisy libraries
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)


def print_config_summary(settings: Settings, dry_run: bool) -> None:
    """Print a summary of the configuration.

    Args:
        settings: Application settings.
        dry_run: Whether dry-run mode is enabled.
    """
    summary = settings.redacted_summary()
    print("Configuration:")
    print(f"  Webhook: {summary['webhook_url']}")
    print(f"  Channel: {summary['channel']}")
    print(f"  Username: {summary['username']}")
    print(f"  Pipedrive API: {summary['pipedrive_api_token']}")
    print(f"  Notification Policy: {summary['notification_policy']}")
    print(f"  Log Level: {summary['log_level']}")
    print(f"  Dry Run: {dry_run}")
    print()


def validate_config() -> Settings | None:
    """Validate and load configuration.

    Returns:
        Settings instance if valid, None if invalid.
    """
    try:
        # Clear cache to force reload
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        print("Configuration validation failed:", file=sys.stderr)
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            msg = error["msg"]
            print(f"  {field}: {msg}", file=sys.stderr)
        return None


def run_config_check(settings: Settings) -> int:
    """Run configuration check and exit.

    Args:
        settings: Validated settings.

    Returns:
        Exit code (0 for success).
    """
    print("Configuration is valid!")
    print()
    print_config_summary(settings, dry_run=settings.dry_run)

    if settings.filter.uses_api:
        print("  Stage names: Pipedrive API")
    else:
        print(f"  Stage names: {len(settings.filter.stage_names)} configured locally")

    print()
    print("All checks passed. Ready to run.")
    return EXIT_SUCCESS


def load_events(source: str, stdin: TextIO | None = None) -> list[IncomingEvent]:
    """Load a batch of events from a JSON file or stdin.

    Args:
        source: Path to a JSON file, or ``-`` for stdin.
        stdin: Stream used when ``source`` is ``-``.

    Returns:
        Events in file order. Entries whose payload is not a mapping are
        logged and skipped.

    Raises:
        ValueError: If the document is not a list of event objects.
    """
    if source == "-":
        raw = (stdin or sys.stdin).read()
    else:
        raw = Path(source).read_text(encoding="utf-8")

    data: Any = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("Expected a JSON list of events")

    events = []
    for item in data:
        if not isinstance(item, dict) or "id" not in item:
            raise ValueError(f"Invalid event entry: {item!r}")
        try:
            events.append(IncomingEvent.from_dict(item))
        except MalformedEventError as e:
            logging.getLogger(__name__).error(f"Skipping event: {e}")
    return events


async def run_relay(relay: Relay, events: list[IncomingEvent]) -> int:
    """Relay one batch of events.

    Args:
        relay: Configured relay.
        events: Batch to process.

    Returns:
        Exit code.
    """
    logger = logging.getLogger(__name__)

    try:
        result = await relay.process_batch(events)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Relay failed: %s", e)
        return EXIT_ERROR

    print(
        f"{len(events)} events, {len(result.notifications)} notifications, "
        f"{result.delivered_count} delivered, {result.failed_count} failed"
    )
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Validate configuration first
    settings = validate_config()
    if settings is None:
        sys.exit(EXIT_CONFIG_ERROR)

    # Determine effective log level
    log_level = args.log_level or settings.log_level
    configure_logging(log_level)

    # Config check mode
    if args.config_check:
        sys.exit(run_config_check(settings))

    dry_run = args.dry_run or settings.dry_run

    try:
        events = load_events(args.events)
    except (OSError, ValueError) as e:
        print(f"Could not read events: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    relay = Relay.from_settings(settings, dry_run=dry_run)
    exit_code = asyncio.run(run_relay(relay, events))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
