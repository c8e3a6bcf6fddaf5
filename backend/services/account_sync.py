"""Account sync orchestrator.

Pulls metrics and recent posts for a connected account through its platform
adapter, refreshing the access token first when needed, and records the
results as a new metric snapshot plus upserted posts.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from errors import DashboardError, NoAccessToken, ReauthRequired, TokenRefreshFailed
from models.social_account import SocialAccount
from services import account_store
from services.http_client import client_scope
from services.platforms import PlatformAdapter, PlatformPost, create_adapter

logger = logging.getLogger(__name__)
settings = get_settings()

AdapterFactory = Callable[..., PlatformAdapter]

# One lock per account id; syncs of the same account never interleave.
# Entries live only while some task holds or waits on them.
_account_locks: dict[str, asyncio.Lock] = {}
_lock_users: dict[str, int] = {}


class SyncResult(BaseModel):
    account_id: str
    platform: str
    followers: int
    engagement_rate: float
    posts_synced: int
    token_refreshed: bool
    synced_at: datetime


class AccountSyncResult(BaseModel):
    """Outcome of one account within a sync-all run."""
    account_id: str
    platform: str
    username: str
    success: bool
    posts_synced: int = 0
    error: Optional[str] = None
    message: Optional[str] = None


def derive_engagement_rate(posts: list[PlatformPost], followers: int) -> float:
    """Mean per-post interactions as a percentage of followers."""
    if not posts or followers <= 0:
        return 0.0
    rates = [(p.likes + p.comments + p.shares) / followers * 100 for p in posts]
    return sum(rates) / len(rates)


async def _ensure_fresh_token(
    db: AsyncSession, account: SocialAccount, adapter: PlatformAdapter
) -> bool:
    """Refresh the account's token if it expired or no longer validates.

    Returns whether a refresh happened.
    """
    if not account.is_expired() and await adapter.is_token_valid():
        return False

    if not account.refresh_token:
        raise ReauthRequired(
            f"{account.platform.value} token is no longer valid, please reconnect"
        )

    try:
        tokens = await adapter.refresh_access_token()
    except (DashboardError, httpx.HTTPError) as e:
        logger.warning(f"Token refresh failed for {account.platform.value} account {account.id}: {e}")
        raise TokenRefreshFailed(
            f"Could not refresh {account.platform.value} token, please reconnect"
        ) from e

    account_store.apply_refreshed_tokens(account, tokens)
    await db.commit()
    logger.info(f"Refreshed {account.platform.value} token for account {account.id}")
    return True


@asynccontextmanager
async def account_lock(account_id: str) -> AsyncIterator[None]:
    """Hold the per-account lock, dropping it once nobody else needs it."""
    lock = _account_locks.setdefault(account_id, asyncio.Lock())
    _lock_users[account_id] = _lock_users.get(account_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _lock_users[account_id] -= 1
        if not _lock_users[account_id]:
            del _lock_users[account_id]
            del _account_locks[account_id]


async def _load_for_sync(db: AsyncSession, user_id: str, account_id: str) -> SocialAccount:
    """Load the account inside the lock, discarding any copy the session holds."""
    account = await account_store.get_account(db, user_id, account_id)
    # A concurrent holder may have rotated the tokens since this session read the row
    await db.refresh(account)
    if not account.access_token:
        raise NoAccessToken(f"No access token for {account.platform.value} account")
    return account


async def sync_account(
    db: AsyncSession,
    user_id: str,
    account_id: str,
    post_limit: Optional[int] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    adapter_factory: AdapterFactory = create_adapter,
) -> SyncResult:
    """Sync one of the caller's accounts.

    Raises AccountNotFound, NoAccessToken, ReauthRequired/TokenRefreshFailed
    or UpstreamAPIError. Nothing is written for a failed fetch.
    """
    limit = post_limit or settings.sync_post_limit

    async with account_lock(account_id):
        account = await _load_for_sync(db, user_id, account_id)

        async with client_scope(client) as http:
            adapter = adapter_factory(
                account.platform, account.access_token, account.refresh_token, client=http
            )
            refreshed = await _ensure_fresh_token(db, account, adapter)
            if refreshed:
                adapter = adapter_factory(
                    account.platform, account.access_token, account.refresh_token, client=http
                )

            metrics = await adapter.fetch_metrics()
            posts = await adapter.fetch_posts(limit)

        for item in posts:
            await account_store.upsert_post(db, account, item)

        if not metrics.engagement_rate:
            metrics.engagement_rate = derive_engagement_rate(posts, metrics.followers)

        now = datetime.now(timezone.utc)
        account_store.add_metric_snapshot(db, account, metrics, captured_at=now)
        account.last_synced_at = now
        await db.commit()

    logger.info(
        f"Synced {account.platform.value} account {account.username}: "
        f"{metrics.followers} followers, {len(posts)} posts"
    )
    return SyncResult(
        account_id=account.id,
        platform=account.platform.value,
        followers=metrics.followers,
        engagement_rate=metrics.engagement_rate,
        posts_synced=len(posts),
        token_refreshed=refreshed,
        synced_at=now,
    )


async def sync_all_accounts(
    db: AsyncSession,
    user_id: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    adapter_factory: AdapterFactory = create_adapter,
) -> list[AccountSyncResult]:
    """Sync every active account in turn. One failure never stops the rest."""
    accounts = await account_store.list_accounts(db, user_id, active_only=True)
    # Plain values; a rollback expires the ORM instances
    targets = [(a.id, a.platform.value, a.username) for a in accounts]
    results = []

    async with client_scope(client) as http:
        for account_id, platform, username in targets:
            try:
                result = await sync_account(
                    db, user_id, account_id, client=http, adapter_factory=adapter_factory
                )
                results.append(AccountSyncResult(
                    account_id=account_id,
                    platform=platform,
                    username=username,
                    success=True,
                    posts_synced=result.posts_synced,
                ))
            except (DashboardError, httpx.HTTPError) as e:
                await db.rollback()
                logger.warning(f"Sync failed for {platform} account {account_id}: {e}")
                results.append(AccountSyncResult(
                    account_id=account_id,
                    platform=platform,
                    username=username,
                    success=False,
                    error=getattr(e, "error_code", "sync_failed"),
                    message=str(e),
                ))
            except Exception as e:
                await db.rollback()
                logger.exception(f"Unexpected sync error for {platform} account {account_id}")
                results.append(AccountSyncResult(
                    account_id=account_id,
                    platform=platform,
                    username=username,
                    success=False,
                    error="sync_failed",
                    message=str(e) or e.__class__.__name__,
                ))

    return results


async def refresh_account_token(
    db: AsyncSession,
    user_id: str,
    account_id: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    adapter_factory: AdapterFactory = create_adapter,
) -> str:
    """Manually check and refresh a token. Returns "valid" or "refreshed"."""
    async with account_lock(account_id):
        account = await _load_for_sync(db, user_id, account_id)

        async with client_scope(client) as http:
            adapter = adapter_factory(
                account.platform, account.access_token, account.refresh_token, client=http
            )
            refreshed = await _ensure_fresh_token(db, account, adapter)

    return "refreshed" if refreshed else "valid"
