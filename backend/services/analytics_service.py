"""Dashboard aggregations over stored snapshots and posts.

All functions take the accounts to aggregate over; callers decide whose
accounts those are. Follower growth is computed per calendar day (UTC).
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from models.metric_snapshot import MetricSnapshot
from models.social_account import SocialAccount, as_utc
from services import account_store


# ============== Response Models ==============

class Overview(BaseModel):
    """Headline numbers across the user's active accounts."""
    total_followers: int = 0
    engagement_rate: float = 0.0
    total_impressions: int = 0
    active_platforms: int = 0


class PlatformStat(BaseModel):
    account_id: str
    platform: str
    username: str
    followers: int
    engagement: float
    impressions: int
    reach: int
    last_synced_at: Optional[datetime] = None


class GrowthPoint(BaseModel):
    date: str
    followers: int


class TopPost(BaseModel):
    id: str
    platform: str
    content: str
    image_url: Optional[str] = None
    likes: int
    comments: int
    shares: int
    views: int
    engagement_rate: float
    posted_at: Optional[datetime] = None


async def _latest_by_account(
    db: AsyncSession, accounts: list[SocialAccount]
) -> dict[str, Optional[MetricSnapshot]]:
    return {a.id: await account_store.latest_snapshot(db, a.id) for a in accounts}


async def compute_overview(db: AsyncSession, accounts: list[SocialAccount]) -> Overview:
    """Sum followers/impressions and average engagement over active accounts.

    The engagement rate is the unweighted mean over accounts that have at
    least one snapshot; active_platforms counts those same accounts.
    """
    active = [a for a in accounts if a.is_active]
    latest = await _latest_by_account(db, active)
    snapshots = [s for s in latest.values() if s is not None]
    if not snapshots:
        return Overview()

    return Overview(
        total_followers=sum(s.follower_count or 0 for s in snapshots),
        engagement_rate=sum(s.engagement_rate or 0.0 for s in snapshots) / len(snapshots),
        total_impressions=sum(s.impressions or 0 for s in snapshots),
        active_platforms=len(snapshots),
    )


async def compute_platform_stats(
    db: AsyncSession, accounts: list[SocialAccount]
) -> list[PlatformStat]:
    """Latest numbers per account. Accounts never synced report zeros."""
    latest = await _latest_by_account(db, accounts)
    stats = []
    for account in accounts:
        snapshot = latest[account.id]
        stats.append(PlatformStat(
            account_id=account.id,
            platform=account.platform.value,
            username=account.username,
            followers=snapshot.follower_count if snapshot else 0,
            engagement=snapshot.engagement_rate if snapshot else 0.0,
            impressions=snapshot.impressions if snapshot else 0,
            reach=snapshot.reach if snapshot else 0,
            last_synced_at=as_utc(account.last_synced_at),
        ))
    return stats


async def compute_follower_growth(
    db: AsyncSession,
    accounts: list[SocialAccount],
    start: date,
    end: date,
) -> list[GrowthPoint]:
    """One point per day in [start, end].

    Each account contributes the followers of its latest snapshot captured
    that day and nothing on days without one (values are not carried forward).
    """
    if end < start:
        return []

    window_start = datetime.combine(start, time.min, tzinfo=timezone.utc)
    window_end = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    snapshots = await account_store.list_snapshots(
        db, [a.id for a in accounts], window_start, window_end
    )

    # Snapshots are ordered oldest first, so later ones win per (day, account)
    per_day: dict[date, dict[str, int]] = {}
    for snapshot in snapshots:
        day = as_utc(snapshot.captured_at).date()
        per_day.setdefault(day, {})[snapshot.account_id] = snapshot.follower_count or 0

    points = []
    day = start
    while day <= end:
        points.append(GrowthPoint(
            date=day.isoformat(),
            followers=sum(per_day.get(day, {}).values()),
        ))
        day += timedelta(days=1)
    return points


async def compute_platform_distribution(
    db: AsyncSession, accounts: list[SocialAccount]
) -> dict[str, float]:
    """Share of followers per platform in percent. All zeros when nobody has followers."""
    latest = await _latest_by_account(db, accounts)
    followers: dict[str, int] = {}
    for account in accounts:
        snapshot = latest[account.id]
        platform = account.platform.value
        followers[platform] = followers.get(platform, 0) + (snapshot.follower_count if snapshot else 0)

    total = sum(followers.values())
    if total == 0:
        return {platform: 0.0 for platform in followers}
    return {platform: count / total * 100 for platform, count in followers.items()}


async def compute_top_posts(
    db: AsyncSession, accounts: list[SocialAccount], limit: int = 10
) -> list[TopPost]:
    """Posts ranked by likes + comments + shares, highest first."""
    posts = await account_store.list_posts(db, [a.id for a in accounts])
    ranked = sorted(posts, key=lambda p: p.interactions, reverse=True)[:limit]
    return [
        TopPost(
            id=post.id,
            platform=post.platform,
            content=post.content or "",
            image_url=post.image_url,
            likes=post.like_count or 0,
            comments=post.comment_count or 0,
            shares=post.share_count or 0,
            views=post.view_count or 0,
            engagement_rate=post.engagement_rate or 0.0,
            posted_at=as_utc(post.posted_at),
        )
        for post in ranked
    ]
