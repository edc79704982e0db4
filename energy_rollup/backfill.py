"""
Backfill minute buckets for historical readings.

Re-aggregates every minute in a range (by default from the earliest stored
reading up to now) on the backfill checkpoint row, then refreshes the
rollup views. An interrupted backfill resumes from its last persisted
batch when run again with the same range.

Usage:
    python -m energy_rollup.backfill
    python -m energy_rollup.backfill --start 1767225600 --end 1767312000

CHANGELOG:
- 2026-10-08: Initial creation (STORY-023)

TODO:
- None
"""

import argparse
import asyncio
import logging
import sys
import time

from energy_rollup.config import get_settings
from energy_rollup.container import ServiceContainer
from energy_rollup.logging_config import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Re-aggregate historical readings into minute buckets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--start",
        type=int,
        help="Range start in Unix seconds. Default: earliest reading",
        metavar="TS",
    )
    parser.add_argument(
        "--end",
        type=int,
        help="Range end in Unix seconds (exclusive). Default: now",
        metavar="TS",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


async def run_backfill(
    container: ServiceContainer, start: int | None, end: int | None,
) -> int:
    """Backfill ``[start, end)`` and return the number of minutes processed."""
    if start is None:
        earliest = await container.readings.earliest()
        if earliest is None:
            logger.info("No readings found. Nothing to backfill.")
            return 0
        start = earliest.timestamp
    if end is None:
        end = int(time.time())

    logger.info("Backfilling minute buckets from %d to %d", start, end)
    processed = await container.job.backfill(start, end)
    logger.info("Backfill complete, processed %d minute(s)", processed)
    return processed


async def _main(args: argparse.Namespace) -> None:
    container = ServiceContainer.from_settings(get_settings())
    try:
        await run_backfill(container, args.start, args.end)
    finally:
        await container.close()


def main(argv: list[str] | None = None) -> int:
    """Backfill entry point; returns a process exit code."""
    args = parse_args(argv)
    setup_logging("DEBUG" if args.verbose else get_settings().LOG_LEVEL)

    if args.start is not None and args.end is not None and args.end <= args.start:
        logger.error("--end must be after --start")
        return 2

    try:
        asyncio.run(_main(args))
    except KeyboardInterrupt:
        logger.info("Backfill interrupted; rerun with the same range to resume")
        return 130
    except Exception:
        logger.exception("Backfill failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
