# src/clearlot_relay/scripts/cleanup_notifications.py
"""Purge notifications older than the retention window.

Intended for a daily cron job:

  python -m clearlot_relay.scripts.cleanup_notifications --days 30
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from clearlot_relay.core.settings import settings
from clearlot_relay.db.session import SessionLocal
from clearlot_relay.services.change_feed import ChangeFeed
from clearlot_relay.services.notifications import NotificationStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--days", type=int, default=settings.notification_retention_days)
    parser.add_argument("--user", default=None, help="Limit the purge to one user id")
    return parser.parse_args(argv)


async def run(days: int, user_id: str | None = None) -> int:
    store = NotificationStore(SessionLocal, ChangeFeed())
    return await store.cleanup_old_notifications(days, user_id=user_id)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=settings.log_level.upper())
    args = parse_args(argv)
    removed = asyncio.run(run(args.days, args.user))
    logger.info("Removed %d notification(s)", removed)


if __name__ == "__main__":
    main()
