"""Test account sync: token refresh ordering, post upserts and failure isolation."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import OTHER_USER_ID, USER_ID, make_account
from errors import (
    AccountNotFound,
    NoAccessToken,
    ReauthRequired,
    TokenRefreshFailed,
    UpstreamAPIError,
)
from models import MetricSnapshot, Platform, Post, SocialAccount
from services import account_store, account_sync
from services.oauth_service import OAuthTokens
from services.platforms import AccountMetrics, PlatformPost


class FakeAdapter:
    """Records every call into a shared log."""

    def __init__(self, log, *, valid=True, metrics=None, posts=None,
                 refresh_error=None, metrics_error=None, refreshed_token="new-token"):
        self.log = log
        self.valid = valid
        self.metrics = metrics or AccountMetrics(followers=100)
        self.posts = posts or []
        self.refresh_error = refresh_error
        self.metrics_error = metrics_error
        self.refreshed_token = refreshed_token

    def build(self, platform, access_token, refresh_token=None, *, client):
        self.log.append(("build", access_token))
        self.platform = Platform(platform)
        return self

    async def is_token_valid(self):
        self.log.append("probe")
        return self.valid

    async def refresh_access_token(self):
        self.log.append("refresh")
        if self.refresh_error:
            raise self.refresh_error
        return OAuthTokens(access_token=self.refreshed_token, expires_in=3600)

    async def fetch_metrics(self):
        self.log.append("metrics")
        if self.metrics_error:
            raise self.metrics_error
        return self.metrics.model_copy()

    async def fetch_posts(self, limit=10):
        self.log.append("posts")
        return self.posts[:limit]


class RotatingProvider:
    """Platform whose refresh tokens are single use, like TikTok's."""

    def __init__(self, access_token, refresh_token):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.refresh_calls = 0
        self.generation = 1

    def build(self, platform, access_token, refresh_token=None, *, client):
        return RotatingAdapter(self, access_token, refresh_token)


class RotatingAdapter:

    def __init__(self, provider, access_token, refresh_token):
        self.provider = provider
        self.access_token = access_token
        self.refresh_token = refresh_token

    async def is_token_valid(self):
        return self.access_token == self.provider.access_token

    async def refresh_access_token(self):
        provider = self.provider
        provider.refresh_calls += 1
        # Give a concurrent sync the chance to run
        await asyncio.sleep(0)
        if self.refresh_token != provider.refresh_token:
            raise UpstreamAPIError("tiktok", 400, "invalid_grant")
        provider.generation += 1
        provider.access_token = f"access-{provider.generation}"
        provider.refresh_token = f"refresh-{provider.generation}"
        return OAuthTokens(
            access_token=provider.access_token,
            refresh_token=provider.refresh_token,
            expires_in=86400,
        )

    async def fetch_metrics(self):
        return AccountMetrics(followers=10)

    async def fetch_posts(self, limit=10):
        return []


@pytest.fixture
def log():
    return []


class TestTokenRefresh:

    async def test_expired_token_refreshes_once_before_metrics(self, db_session, log):
        account = await make_account(
            db_session,
            refresh_token="refresh-1",
            token_expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        fake = FakeAdapter(log)

        result = await account_sync.sync_account(
            db_session, USER_ID, account.id, adapter_factory=fake.build
        )

        calls = [c for c in log if isinstance(c, str)]
        assert calls.count("refresh") == 1
        assert calls.count("metrics") == 1
        assert calls.index("refresh") < calls.index("metrics")
        assert "probe" not in calls
        # Adapter rebuilt with the fresh token
        assert ("build", "new-token") in log
        assert result.token_refreshed is True

        await db_session.refresh(account)
        assert account.access_token == "new-token"
        assert account.refresh_token == "refresh-1"

    async def test_valid_token_is_not_refreshed(self, db_session, log):
        account = await make_account(db_session, refresh_token="r")
        result = await account_sync.sync_account(
            db_session, USER_ID, account.id, adapter_factory=FakeAdapter(log).build
        )
        assert "refresh" not in log
        assert result.token_refreshed is False

    async def test_invalid_token_without_refresh_token(self, db_session, log):
        account = await make_account(db_session, refresh_token=None)
        with pytest.raises(ReauthRequired):
            await account_sync.sync_account(
                db_session, USER_ID, account.id,
                adapter_factory=FakeAdapter(log, valid=False).build,
            )
        assert "metrics" not in log

    async def test_failed_refresh_requires_reauth(self, db_session, log):
        account = await make_account(db_session, refresh_token="r")
        fake = FakeAdapter(log, valid=False, refresh_error=UpstreamAPIError("instagram", 400, "bad"))

        with pytest.raises(TokenRefreshFailed) as exc_info:
            await account_sync.sync_account(db_session, USER_ID, account.id, adapter_factory=fake.build)

        assert exc_info.value.to_dict()["requires_reauth"] is True

    async def test_manual_refresh_outcomes(self, db_session, log):
        account = await make_account(db_session, refresh_token="r")

        assert await account_sync.refresh_account_token(
            db_session, USER_ID, account.id, adapter_factory=FakeAdapter(log).build
        ) == "valid"
        assert await account_sync.refresh_account_token(
            db_session, USER_ID, account.id, adapter_factory=FakeAdapter(log, valid=False).build
        ) == "refreshed"


class TestSyncAccount:

    async def test_writes_snapshot_and_posts(self, db_session, log):
        account = await make_account(db_session)
        posts = [
            PlatformPost(id="p1", likes=10, comments=5, shares=5, views=200),
            PlatformPost(id="p2", likes=30, views=0),
        ]
        fake = FakeAdapter(log, metrics=AccountMetrics(followers=1000, impressions=50), posts=posts)

        result = await account_sync.sync_account(
            db_session, USER_ID, account.id, adapter_factory=fake.build
        )

        stored = {p.provider_post_id: p for p in (await db_session.execute(select(Post))).scalars()}
        assert stored["p1"].engagement_rate == pytest.approx(10.0)
        assert stored["p2"].engagement_rate == 0.0

        snapshot = (await db_session.execute(select(MetricSnapshot))).scalar_one()
        assert snapshot.follower_count == 1000
        # Mean of 20/1000 and 30/1000 as percentages
        assert snapshot.engagement_rate == pytest.approx(2.5)
        assert result.posts_synced == 2
        assert account.last_synced_at is not None

    async def test_resync_updates_posts_in_place(self, db_session, log):
        account = await make_account(db_session)
        first = FakeAdapter(log, posts=[PlatformPost(id="p1", likes=1, views=10)])
        second = FakeAdapter(log, posts=[PlatformPost(id="p1", likes=9, views=10)])

        await account_sync.sync_account(db_session, USER_ID, account.id, adapter_factory=first.build)
        await account_sync.sync_account(db_session, USER_ID, account.id, adapter_factory=second.build)

        posts = (await db_session.execute(select(Post))).scalars().all()
        snapshots = (await db_session.execute(select(MetricSnapshot))).scalars().all()
        assert len(posts) == 1
        assert posts[0].like_count == 9
        assert len(snapshots) == 2

    async def test_platform_engagement_rate_is_kept(self, db_session, log):
        account = await make_account(db_session)
        fake = FakeAdapter(
            log,
            metrics=AccountMetrics(followers=100, engagement_rate=4.2),
            posts=[PlatformPost(id="p1", likes=50)],
        )
        result = await account_sync.sync_account(
            db_session, USER_ID, account.id, adapter_factory=fake.build
        )
        assert result.engagement_rate == pytest.approx(4.2)

    async def test_other_users_account_not_found(self, db_session, log):
        account = await make_account(db_session, user_id=OTHER_USER_ID)
        with pytest.raises(AccountNotFound):
            await account_sync.sync_account(
                db_session, USER_ID, account.id, adapter_factory=FakeAdapter(log).build
            )
        assert log == []

    async def test_missing_access_token(self, db_session, log):
        account = await make_account(db_session, access_token=None)
        with pytest.raises(NoAccessToken):
            await account_sync.sync_account(
                db_session, USER_ID, account.id, adapter_factory=FakeAdapter(log).build
            )

    async def test_upstream_failure_writes_nothing(self, db_session, log):
        account = await make_account(db_session)
        fake = FakeAdapter(log, metrics_error=UpstreamAPIError("instagram", 503, "down"))

        with pytest.raises(UpstreamAPIError):
            await account_sync.sync_account(db_session, USER_ID, account.id, adapter_factory=fake.build)

        assert (await db_session.execute(select(MetricSnapshot))).first() is None


class TestSyncAll:

    async def test_one_failure_does_not_stop_the_rest(self, db_session, log):
        broken_id = (await make_account(db_session, platform=Platform.TWITTER)).id
        healthy_id = (await make_account(db_session, platform=Platform.YOUTUBE)).id
        await make_account(db_session, platform=Platform.FACEBOOK, is_active=False)

        def factory(platform, access_token, refresh_token=None, *, client):
            if Platform(platform) is Platform.TWITTER:
                fake = FakeAdapter(log, metrics_error=UpstreamAPIError("twitter", 429, "slow down"))
            else:
                fake = FakeAdapter(log, metrics=AccountMetrics(followers=7))
            return fake.build(platform, access_token, refresh_token, client=client)

        results = await account_sync.sync_all_accounts(db_session, USER_ID, adapter_factory=factory)

        by_id = {r.account_id: r for r in results}
        assert len(results) == 2
        assert by_id[broken_id].success is False
        assert by_id[broken_id].error == "upstream_error"
        assert by_id[healthy_id].success is True

        snapshots = (await db_session.execute(select(MetricSnapshot))).scalars().all()
        assert [s.account_id for s in snapshots] == [healthy_id]

        refreshed = await db_session.get(SocialAccount, healthy_id)
        assert refreshed.last_synced_at is not None

    def test_derived_engagement_needs_followers(self):
        posts = [PlatformPost(id="p", likes=5)]
        assert account_sync.derive_engagement_rate(posts, 0) == 0.0
        assert account_sync.derive_engagement_rate([], 100) == 0.0

    async def test_unexpected_error_is_isolated(self, db_session, log):
        broken_id = (await make_account(db_session, platform=Platform.TIKTOK)).id
        healthy_id = (await make_account(db_session, platform=Platform.INSTAGRAM)).id

        def factory(platform, access_token, refresh_token=None, *, client):
            if Platform(platform) is Platform.TIKTOK:
                fake = FakeAdapter(log, metrics_error=KeyError("id"))
            else:
                fake = FakeAdapter(log)
            return fake.build(platform, access_token, refresh_token, client=client)

        results = await account_sync.sync_all_accounts(db_session, USER_ID, adapter_factory=factory)

        by_id = {r.account_id: r for r in results}
        assert by_id[broken_id].success is False
        assert by_id[broken_id].error == "sync_failed"
        assert by_id[healthy_id].success is True

    async def test_non_json_reply_does_not_stop_the_rest(self, db_session):
        twitter_id = (await make_account(db_session, platform=Platform.TWITTER)).id
        youtube_id = (await make_account(db_session, platform=Platform.YOUTUBE)).id

        def handler(request):
            if request.url.host == "api.twitter.com":
                return httpx.Response(200, text="<html>maintenance</html>")
            if request.url.params.get("part") == "id":
                return httpx.Response(200, json={"items": [{"id": "UC1"}]})
            return httpx.Response(500, text="backend error")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await account_sync.sync_all_accounts(db_session, USER_ID, client=client)

        by_id = {r.account_id: r for r in results}
        assert by_id[twitter_id].error == "upstream_error"
        assert by_id[youtube_id].error == "upstream_error"
        assert "500" in by_id[youtube_id].message


class TestAccountLock:

    async def test_concurrent_syncs_refresh_once(self, db_engine, db_session):
        account = await make_account(
            db_session,
            platform=Platform.TIKTOK,
            refresh_token="refresh-1",
            token_expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        account_id = account.id
        provider = RotatingProvider("access-token", "refresh-1")

        other_sessions = async_sessionmaker(db_engine, expire_on_commit=False)
        async with other_sessions() as other:
            # The second session already holds the pre-refresh row
            await account_store.get_account(other, USER_ID, account_id)
            await other.commit()

            results = await asyncio.gather(
                account_sync.sync_account(db_session, USER_ID, account_id, adapter_factory=provider.build),
                account_sync.sync_account(other, USER_ID, account_id, adapter_factory=provider.build),
                return_exceptions=True,
            )

        assert [type(r) for r in results] == [account_sync.SyncResult, account_sync.SyncResult]
        assert provider.refresh_calls == 1
        assert [r.token_refreshed for r in results] == [True, False]

        stored = await db_session.get(SocialAccount, account_id)
        await db_session.refresh(stored)
        assert stored.refresh_token == "refresh-2"

    async def test_lock_entries_are_released(self, db_session, log):
        account = await make_account(db_session)

        await account_sync.sync_account(
            db_session, USER_ID, account.id, adapter_factory=FakeAdapter(log).build
        )

        assert account.id not in account_sync._account_locks
        assert account.id not in account_sync._lock_users

    async def test_lock_serializes_holders(self):
        order = []

        async def holder(name):
            async with account_sync.account_lock("acct-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(holder("a"), holder("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert "acct-1" not in account_sync._account_locks
