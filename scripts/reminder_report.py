"""Print an audit summary of the reminder claim log.

    python scripts/reminder_report.py
    python scripts/reminder_report.py --org-id 3f0c... --stale-minutes 30

Shows claim counts per reminder type and status, then lists claims that have
sat in 'pending' longer than --stale-minutes (left behind by a run that died
between claim and finalize).
"""
import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

# Resolve project root so imports work when run from any cwd
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT))

from db.connection import dispose_engine, get_db
from db.models import REMINDER_STATUSES, REMINDER_TYPES
import db.repositories.reminder_events as reminder_events_repo

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def format_counts(counts: dict[tuple[str, str], int]) -> list[str]:
    """Render {(type, status): n} as aligned table lines, one row per type."""
    header = f"{'reminder_type':<22}" + "".join(f"{s:>9}" for s in REMINDER_STATUSES)
    lines = [header, "-" * len(header)]
    for reminder_type in REMINDER_TYPES:
        cells = "".join(
            f"{counts.get((reminder_type, status), 0):>9}" for status in REMINDER_STATUSES
        )
        lines.append(f"{reminder_type:<22}{cells}")
    return lines


async def report(org_id: Optional[uuid.UUID], stale_minutes: int) -> int:
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=stale_minutes)
    try:
        async with get_db() as session:
            counts = await reminder_events_repo.count_by_status(session, org_id=org_id)
            stale = await reminder_events_repo.get_stale_pending(session, cutoff, org_id=org_id)
    finally:
        await dispose_engine()

    for line in format_counts(counts):
        print(line)

    print()
    if not stale:
        print(f"No claims pending for more than {stale_minutes} minutes.")
        return 0

    print(f"{len(stale)} claim(s) pending for more than {stale_minutes} minutes:")
    for row in stale:
        print(f"  {row.dedupe_key}  updated_at={row.updated_at.isoformat()}  attempts={row.attempt_count}")
    logger.warning("%d stale pending reminder claims", len(stale))
    return 1


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reminder claim log summary")
    parser.add_argument("--org-id", type=uuid.UUID, default=None, help="Limit to one organization")
    parser.add_argument(
        "--stale-minutes",
        type=int,
        default=30,
        help="Report pending claims older than this many minutes (default 30)",
    )
    return parser


if __name__ == "__main__":
    args = _build_arg_parser().parse_args()
    sys.exit(asyncio.run(report(args.org_id, args.stale_minutes)))
