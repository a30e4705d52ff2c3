"""Entry point for RSS Aggregator: python -m rss_aggregator <command>"""

import argparse
import asyncio
import json
import logging
import sys

from rss_aggregator.config import Settings
from rss_aggregator.scheduler import FeedScheduler
from rss_aggregator.service import Aggregator
from rss_aggregator.tools import TOOLS, set_aggregator

logger = logging.getLogger("rss_aggregator")

COMMANDS = {
    "migrate": "Create tables in the database",
    "seed-feeds": "Create default RSS feeds",
    "fetch-feeds": "Fetch and process all RSS feeds",
    "stats": "Show feed and item statistics",
    "serve": "Run the background feed fetcher until interrupted",
    "tool": "Run one admin tool and print its JSON result",
}


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rss_aggregator")
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in COMMANDS.items():
        command = sub.add_parser(name, help=help_text)
        if name == "tool":
            command.add_argument("name", choices=[t.name for t in TOOLS])
            command.add_argument(
                "--args", default="{}", help="Tool arguments as a JSON object"
            )
    return parser


def cmd_migrate(aggregator: Aggregator) -> int:
    # Connecting already creates the schema.
    logger.info("Database migration completed successfully")
    return 0


def cmd_seed_feeds(aggregator: Aggregator) -> int:
    result = aggregator.seed_feeds()
    logger.info(
        "Seeded feeds: %d created, %d already existed, %d errors",
        result.created,
        result.existed,
        result.errors,
    )
    return 0


def cmd_fetch_feeds(aggregator: Aggregator) -> int:
    logger.info("Starting feed fetch...")
    batch = aggregator.ingest_all(exclude_test_sources=False)
    logger.info(
        "Feed fetch completed: %d items created, %d items updated, %d errors",
        batch.created,
        batch.updated,
        batch.errors,
    )
    print(batch.summary())
    return 0


def cmd_stats(aggregator: Aggregator) -> int:
    stats = aggregator.get_stats()
    print(f"Total Feeds: {stats.feed_count}")
    print(f"Total Items: {stats.item_count}")
    print(f"Last Successful Fetch: {stats.describe_last_success()}")
    print(f"Last Failed Fetch: {stats.describe_last_error()}")
    if stats.last_error:
        print(f"Last Error: {stats.last_error}")
    return 0


def cmd_tool(name: str, raw_args: str) -> int:
    tool = next(t for t in TOOLS if t.name == name)
    try:
        tool_args = json.loads(raw_args)
    except json.JSONDecodeError as e:
        logger.error("Invalid --args JSON: %s", e)
        return 2
    print(tool.invoke(tool_args))
    return 0


async def serve(aggregator: Aggregator, settings: Settings) -> None:
    """Run the background fetcher until cancelled."""
    if not settings.background_fetch_enabled:
        logger.info("Background feed fetcher is disabled")
        return

    scheduler = FeedScheduler(
        aggregator.coordinator, interval=settings.background_fetch_interval
    )
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    aggregator = Aggregator.from_settings(settings)
    set_aggregator(aggregator)
    try:
        if args.command == "migrate":
            return cmd_migrate(aggregator)
        if args.command == "seed-feeds":
            return cmd_seed_feeds(aggregator)
        if args.command == "fetch-feeds":
            return cmd_fetch_feeds(aggregator)
        if args.command == "stats":
            return cmd_stats(aggregator)
        if args.command == "tool":
            return cmd_tool(args.name, args.args)
        try:
            asyncio.run(serve(aggregator, settings))
        except KeyboardInterrupt:
            print("\nGoodbye!")
        return 0
    finally:
        set_aggregator(None)
        aggregator.close()


if __name__ == "__main__":
    sys.exit(main())
