"""
Sync Stripe Events
==================

Run a single Stripe event poll cycle outside the API process, e.g. after
an outage or from a cron job. Uses the same settings and database as the
service.

Usage:
    python -m billsync.scripts.sync_stripe_events [--page-size N]
"""

import argparse
import asyncio
import json
import logging
import sys

from billsync.config import settings
from billsync.core.database import close_db, init_db
from billsync.core.structured_logging import setup_logging
from billsync.services.event_poller import StripeEventPoller

logger = logging.getLogger(__name__)


async def _run() -> int:
    poller = StripeEventPoller()
    try:
        summary = await poller.poll_once()
    except Exception as exc:
        logger.error("Stripe event sync failed: %s", exc)
        print(f"FAIL: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(summary.as_dict()))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one Stripe event reconciliation cycle")
    parser.add_argument(
        "--page-size",
        type=int,
        default=settings.stripe_events_page_size,
        help="Events requested per page (max 100)",
    )
    args = parser.parse_args()

    if not 1 <= args.page_size <= 100:
        parser.error("--page-size must be between 1 and 100")
    settings.stripe_events_page_size = args.page_size

    setup_logging(log_dir=settings.log_directory, log_level=settings.log_level.upper())
    if not settings.stripe_configured:
        print("BILLSYNC_STRIPE_SECRET_KEY is not set. Nothing to sync.", file=sys.stderr)
        sys.exit(1)

    init_db()
    try:
        exit_code = asyncio.run(_run())
    finally:
        close_db()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
