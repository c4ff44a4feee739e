"""SynCRM: activity reminder worker.

Entry point for the reminder engine. Either runs the periodic ticker, or a
single pass of one processor (handy for cron-driven deployments and for
backfilling after an outage).

Usage:
  # Run all processors on their cadence until interrupted
  python worker.py serve

  # One pass of a single processor
  python worker.py pre-start
  python worker.py post-start
  python worker.py digest

  # Evaluate a pass as if it were a different instant (UTC ISO 8601)
  python worker.py digest --now 2026-02-23T13:05:00+00:00
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from db.connection import dispose_engine
from reminders.processors import (
    process_daily_digests,
    process_post_start_reminders,
    process_pre_start_reminders,
)
from reminders.scheduler import ReminderScheduler
from reminders.timezones import to_utc

logger = logging.getLogger(__name__)

PROCESSORS = {
    "pre-start": process_pre_start_reminders,
    "post-start": process_post_start_reminders,
    "digest": process_daily_digests,
}


async def run_once(command: str, now: Optional[datetime] = None) -> None:
    try:
        summary = await PROCESSORS[command](now)
        print(
            f"  {command}: sent={summary.sent} skipped={summary.skipped} "
            f"failed={summary.failed} (duplicates={summary.duplicates})"
        )
    finally:
        await dispose_engine()


async def serve() -> None:
    ticker = ReminderScheduler()
    ticker.start()
    try:
        await asyncio.Event().wait()
    finally:
        ticker.stop()
        await dispose_engine()


def _parse_now(value: str) -> datetime:
    try:
        return to_utc(datetime.fromisoformat(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 datetime: {value!r}")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SynCRM activity reminder worker"
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run all reminder processors on their schedule")

    for name, help_text in (
        ("pre-start", "Send reminders for activities starting in ~1 hour"),
        ("post-start", "Send nudges for activities still open ~1 hour after start"),
        ("digest", "Send daily digests to users whose local time is the digest hour"),
    ):
        once = sub.add_parser(name, help=help_text)
        once.add_argument(
            "--now",
            type=_parse_now,
            default=None,
            help="Evaluate as of this instant (ISO 8601; naive values are UTC)",
        )

    return parser


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.command == "serve":
        try:
            asyncio.run(serve())
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")

    elif args.command in PROCESSORS:
        asyncio.run(run_once(args.command, now=args.now))

    else:
        parser.print_help()
        sys.exit(1)
