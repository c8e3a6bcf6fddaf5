"""Background scheduler for periodic tasks.

Uses APScheduler to auto-sync accounts whose data has gone stale according
to each user's auto_sync_interval_hours. Disabled unless AUTO_SYNC_ENABLED.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import async_session
from models.social_account import SocialAccount, as_utc
from models.user_settings import UserSettings
from services.account_sync import sync_all_accounts

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_SYNC_INTERVAL_HOURS = 24

# Global scheduler instance
scheduler = AsyncIOScheduler()


def is_sync_due(
    last_synced: list[Optional[datetime]],
    interval_hours: int,
    now: Optional[datetime] = None,
) -> bool:
    """True if any account was never synced or the oldest sync is past the interval."""
    if not last_synced:
        return False
    if any(ts is None for ts in last_synced):
        return True
    now = now or datetime.now(timezone.utc)
    oldest = min(as_utc(ts) for ts in last_synced)
    return now - oldest >= timedelta(hours=interval_hours)


async def find_users_due(db: AsyncSession, now: Optional[datetime] = None) -> list[str]:
    """User ids with at least one active account that is due for a sync."""
    result = await db.execute(
        select(SocialAccount.user_id, SocialAccount.last_synced_at)
        .where(SocialAccount.is_active.is_(True))
    )
    last_synced: dict[str, list[Optional[datetime]]] = {}
    for user_id, synced_at in result.all():
        last_synced.setdefault(user_id, []).append(synced_at)

    if not last_synced:
        return []

    result = await db.execute(
        select(UserSettings.user_id, UserSettings.auto_sync_interval_hours)
        .where(UserSettings.user_id.in_(list(last_synced)))
    )
    intervals = dict(result.all())

    return [
        user_id
        for user_id, values in last_synced.items()
        if is_sync_due(values, intervals.get(user_id) or DEFAULT_SYNC_INTERVAL_HOURS, now)
    ]


async def auto_sync_accounts():
    """Background task: sync every user whose accounts are due.

    Each user's sync is isolated; a failure is logged and the run continues.
    """
    logger.info("Starting scheduled account auto-sync...")

    async with async_session() as db:
        user_ids = await find_users_due(db)

    for user_id in user_ids:
        async with async_session() as db:
            try:
                results = await sync_all_accounts(db, user_id)
            except Exception:
                logger.exception(f"Auto-sync failed for user {user_id}")
                continue
        failed = sum(1 for r in results if not r.success)
        logger.info(f"Auto-synced {len(results)} accounts for user {user_id} ({failed} failed)")


def start_scheduler():
    """Start the background scheduler if auto-sync is enabled."""
    if not settings.auto_sync_enabled:
        logger.info("Auto-sync disabled, scheduler not started")
        return

    if scheduler.running:
        logger.info("Scheduler already running")
        return

    scheduler.add_job(
        auto_sync_accounts,
        trigger=IntervalTrigger(minutes=settings.auto_sync_check_minutes),
        id="account_auto_sync",
        name="Sync stale social accounts",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        f"Background scheduler started (auto-sync check every "
        f"{settings.auto_sync_check_minutes} minutes)"
    )


def stop_scheduler():
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")
