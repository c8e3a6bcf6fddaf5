"""Dashboard router - overview, growth, distribution and top posts for the caller."""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import CurrentUser
from services import account_store, analytics_service
from services.analytics_service import GrowthPoint, Overview, PlatformStat, TopPost

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class DashboardOverview(Overview):
    platform_stats: list[PlatformStat]


class PlatformDistribution(BaseModel):
    distribution: dict[str, float]


@router.get("/overview", response_model=DashboardOverview)
async def get_overview(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Headline totals plus latest per-account stats."""
    accounts = await account_store.list_accounts(db, current_user.user_id, active_only=True)
    overview = await analytics_service.compute_overview(db, accounts)
    platform_stats = await analytics_service.compute_platform_stats(db, accounts)
    return DashboardOverview(**overview.model_dump(), platform_stats=platform_stats)


@router.get("/follower-growth", response_model=list[GrowthPoint])
async def get_follower_growth(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    days: int = Query(7, ge=1, le=365),
):
    """Daily follower totals for the last N days, today included."""
    accounts = await account_store.list_accounts(db, current_user.user_id, active_only=True)
    end = datetime.now(timezone.utc).date()
    start = end - timedelta(days=days - 1)
    return await analytics_service.compute_follower_growth(db, accounts, start, end)


@router.get("/platform-distribution", response_model=PlatformDistribution)
async def get_platform_distribution(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    accounts = await account_store.list_accounts(db, current_user.user_id, active_only=True)
    distribution = await analytics_service.compute_platform_distribution(db, accounts)
    return PlatformDistribution(distribution=distribution)


@router.get("/top-posts", response_model=list[TopPost])
async def get_top_posts(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(10, ge=1, le=100),
):
    accounts = await account_store.list_accounts(db, current_user.user_id, active_only=True)
    return await analytics_service.compute_top_posts(db, accounts, limit)
