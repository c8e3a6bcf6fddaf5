"""Persistence helpers for accounts, snapshots, posts, reports and settings.

Every query is scoped by the owning user id where the row has one. Callers
own the transaction: nothing here commits except the settings upsert.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AccountNotFound, ReportNotFound
from models.metric_snapshot import MetricSnapshot
from models.post import Post
from models.report import Report
from models.social_account import Platform, SocialAccount
from models.user_settings import UserSettings
from services.oauth_service import OAuthTokens
from services.platforms.common import AccountMetrics, PlatformPost

logger = logging.getLogger(__name__)


# ============== Accounts ==============

async def save_connected_account(
    db: AsyncSession,
    user_id: str,
    platform: Platform,
    external_account_id: str,
    username: str,
    tokens: OAuthTokens,
) -> SocialAccount:
    """Create the account, or update it when the same external account reconnects."""
    result = await db.execute(
        select(SocialAccount).where(
            SocialAccount.user_id == user_id,
            SocialAccount.platform == platform,
            SocialAccount.external_account_id == external_account_id,
        )
    )
    account = result.scalar_one_or_none()

    if account:
        account.username = username
        account.is_active = True
        logger.info(f"Reconnected {platform.value} account {username} for user {user_id}")
    else:
        account = SocialAccount(
            user_id=user_id,
            platform=platform,
            external_account_id=external_account_id,
            username=username,
        )
        db.add(account)
        logger.info(f"Connected {platform.value} account {username} for user {user_id}")

    account.access_token = tokens.access_token
    account.refresh_token = tokens.refresh_token or account.refresh_token
    account.token_expires_at = tokens.expires_at()
    account.scope = tokens.scope

    await db.commit()
    await db.refresh(account)
    return account


async def get_account(db: AsyncSession, user_id: str, account_id: str) -> SocialAccount:
    """Load one of the caller's accounts. Raises AccountNotFound otherwise."""
    result = await db.execute(
        select(SocialAccount).where(
            SocialAccount.id == account_id,
            SocialAccount.user_id == user_id,
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFound()
    return account


async def list_accounts(
    db: AsyncSession, user_id: str, active_only: bool = False
) -> list[SocialAccount]:
    query = select(SocialAccount).where(SocialAccount.user_id == user_id)
    if active_only:
        query = query.where(SocialAccount.is_active.is_(True))
    result = await db.execute(query.order_by(SocialAccount.created_at))
    return list(result.scalars().all())


def apply_refreshed_tokens(account: SocialAccount, tokens: OAuthTokens) -> None:
    """Store a refreshed token, keeping the old refresh token unless rotated."""
    account.access_token = tokens.access_token
    if tokens.refresh_token:
        account.refresh_token = tokens.refresh_token
    expires_at = tokens.expires_at()
    if expires_at:
        account.token_expires_at = expires_at


async def delete_account(db: AsyncSession, user_id: str, account_id: str) -> None:
    """Disconnect an account. Its snapshots and posts are deleted with it."""
    account = await get_account(db, user_id, account_id)
    await db.delete(account)
    await db.commit()
    logger.info(f"Disconnected {account.platform.value} account {account.username}")


# ============== Snapshots ==============

def add_metric_snapshot(
    db: AsyncSession,
    account: SocialAccount,
    metrics: AccountMetrics,
    captured_at: Optional[datetime] = None,
) -> MetricSnapshot:
    snapshot = MetricSnapshot(
        account_id=account.id,
        platform=account.platform.value,
        follower_count=metrics.followers,
        following_count=metrics.following,
        engagement_rate=metrics.engagement_rate,
        impressions=metrics.impressions,
        reach=metrics.reach,
        captured_at=captured_at or datetime.now(timezone.utc),
    )
    db.add(snapshot)
    return snapshot


async def latest_snapshot(db: AsyncSession, account_id: str) -> Optional[MetricSnapshot]:
    result = await db.execute(
        select(MetricSnapshot)
        .where(MetricSnapshot.account_id == account_id)
        .order_by(MetricSnapshot.captured_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_snapshots(
    db: AsyncSession,
    account_ids: list[str],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[MetricSnapshot]:
    """Snapshots of the given accounts, oldest first, optionally bounded [start, end)."""
    if not account_ids:
        return []
    query = select(MetricSnapshot).where(MetricSnapshot.account_id.in_(account_ids))
    if start is not None:
        query = query.where(MetricSnapshot.captured_at >= start)
    if end is not None:
        query = query.where(MetricSnapshot.captured_at < end)
    result = await db.execute(query.order_by(MetricSnapshot.captured_at))
    return list(result.scalars().all())


# ============== Posts ==============

def post_engagement_rate(likes: int, comments: int, shares: int, views: int) -> float:
    """Interactions per view, as a percentage. 0 when views are unknown."""
    if views <= 0:
        return 0.0
    return (likes + comments + shares) / views * 100


async def upsert_post(db: AsyncSession, account: SocialAccount, item: PlatformPost) -> Post:
    """Insert a post or update its counts if it was seen before."""
    result = await db.execute(
        select(Post).where(
            Post.account_id == account.id,
            Post.provider_post_id == item.id,
        )
    )
    post = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if post is None:
        post = Post(
            account_id=account.id,
            platform=account.platform.value,
            provider_post_id=item.id,
            created_at=now,
        )
        db.add(post)

    post.content = item.content
    post.image_url = item.image_url
    post.posted_at = item.posted_at
    post.like_count = item.likes
    post.comment_count = item.comments
    post.share_count = item.shares
    post.view_count = item.views
    post.engagement_rate = post_engagement_rate(item.likes, item.comments, item.shares, item.views)
    post.synced_at = now
    return post


async def list_posts(db: AsyncSession, account_ids: list[str]) -> list[Post]:
    if not account_ids:
        return []
    result = await db.execute(select(Post).where(Post.account_id.in_(account_ids)))
    return list(result.scalars().all())


# ============== Reports ==============

async def get_report(db: AsyncSession, user_id: str, report_id: str) -> Report:
    result = await db.execute(
        select(Report).where(Report.id == report_id, Report.user_id == user_id)
    )
    report = result.scalar_one_or_none()
    if report is None:
        raise ReportNotFound()
    return report


async def list_reports(db: AsyncSession, user_id: str) -> list[Report]:
    """Caller's reports, newest first."""
    result = await db.execute(
        select(Report)
        .where(Report.user_id == user_id)
        .order_by(Report.created_at.desc())
    )
    return list(result.scalars().all())


# ============== User settings ==============

async def get_user_settings(db: AsyncSession, user_id: str) -> UserSettings:
    """Return the caller's settings, creating the defaults on first read."""
    user_settings = await db.get(UserSettings, user_id)
    if user_settings is None:
        user_settings = UserSettings(
            user_id=user_id,
            report_frequency="weekly",
            report_format="pdf",
            auto_sync_interval_hours=24,
        )
        db.add(user_settings)
        await db.commit()
        await db.refresh(user_settings)
    return user_settings


async def update_user_settings(db: AsyncSession, user_id: str, changes: dict) -> UserSettings:
    user_settings = await get_user_settings(db, user_id)
    for field, value in changes.items():
        setattr(user_settings, field, value)
    await db.commit()
    await db.refresh(user_settings)
    return user_settings
