"""Shared fixtures: in-memory database, seed builders and a fake OAuth state store."""

import os

# Must be set before the app modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOTRUE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("BASE_URL", "https://dash.example.com")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")
for _platform in ("instagram", "twitter", "tiktok", "facebook", "youtube"):
    os.environ.setdefault(f"{_platform.upper()}_CLIENT_ID", f"{_platform}-client-id")
    os.environ.setdefault(f"{_platform.upper()}_CLIENT_SECRET", f"{_platform}-client-secret")

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database import Base
from models import MetricSnapshot, Platform, Post, SocialAccount
from services.oauth_state_store import OAuthStateStore, PendingAuthorization

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def make_token(secret=None, audience="authenticated", expires_in=timedelta(hours=1), **claims):
    """Sign a GoTrue-style access token for USER_ID."""
    payload = {
        "sub": USER_ID,
        "email": "kate@example.com",
        "aud": audience,
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, secret or os.environ["GOTRUE_JWT_SECRET"], algorithm="HS256")


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create an async session bound to the in-memory database."""
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def state_store(monkeypatch):
    """Replace Redis with a dict for pending OAuth attempts."""
    pending: dict[str, PendingAuthorization] = {}

    async def save_pending(state, value):
        pending[state] = value

    async def pop_pending(state):
        return pending.pop(state, None)

    monkeypatch.setattr(OAuthStateStore, "save_pending", staticmethod(save_pending))
    monkeypatch.setattr(OAuthStateStore, "pop_pending", staticmethod(pop_pending))
    return pending


# ============== Builders ==============

async def make_account(
    db,
    platform: Platform = Platform.INSTAGRAM,
    user_id: str = USER_ID,
    username: Optional[str] = None,
    access_token: Optional[str] = "access-token",
    refresh_token: Optional[str] = None,
    token_expires_at: Optional[datetime] = None,
    is_active: bool = True,
) -> SocialAccount:
    account = SocialAccount(
        user_id=user_id,
        platform=platform,
        external_account_id=f"{platform.value}-{username or 'acct'}-{user_id}",
        username=username or f"@{platform.value}_user",
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=token_expires_at,
        is_active=is_active,
    )
    db.add(account)
    await db.commit()
    return account


async def add_snapshot(
    db,
    account: SocialAccount,
    followers: int = 0,
    engagement_rate: float = 0.0,
    impressions: int = 0,
    reach: int = 0,
    captured_at: Optional[datetime] = None,
) -> MetricSnapshot:
    snapshot = MetricSnapshot(
        account_id=account.id,
        platform=account.platform.value,
        follower_count=followers,
        engagement_rate=engagement_rate,
        impressions=impressions,
        reach=reach,
        captured_at=captured_at or datetime.now(timezone.utc),
    )
    db.add(snapshot)
    await db.commit()
    return snapshot


async def add_post(
    db,
    account: SocialAccount,
    provider_post_id: str,
    likes: int = 0,
    comments: int = 0,
    shares: int = 0,
    views: int = 0,
    content: str = "",
) -> Post:
    post = Post(
        account_id=account.id,
        platform=account.platform.value,
        provider_post_id=provider_post_id,
        content=content or f"post {provider_post_id}",
        like_count=likes,
        comment_count=comments,
        share_count=shares,
        view_count=views,
    )
    db.add(post)
    await db.commit()
    return post
