"""Test auto-sync due detection."""

from datetime import datetime, timedelta, timezone

from conftest import OTHER_USER_ID, USER_ID, make_account
from models import Platform, UserSettings
from services.scheduler import find_users_due, is_sync_due

NOW = datetime(2024, 3, 10, 12, tzinfo=timezone.utc)


class TestIsSyncDue:

    def test_never_synced(self):
        assert is_sync_due([None], 24, NOW) is True

    def test_oldest_sync_decides(self):
        recent = NOW - timedelta(hours=1)
        stale = NOW - timedelta(hours=25)
        assert is_sync_due([recent, stale], 24, NOW) is True
        assert is_sync_due([recent], 24, NOW) is False

    def test_no_accounts(self):
        assert is_sync_due([], 24, NOW) is False


class TestFindUsersDue:

    async def test_respects_user_interval(self, db_session):
        mine = await make_account(db_session, Platform.INSTAGRAM)
        theirs = await make_account(db_session, Platform.INSTAGRAM, user_id=OTHER_USER_ID)
        mine.last_synced_at = NOW - timedelta(hours=5)
        theirs.last_synced_at = NOW - timedelta(hours=5)
        db_session.add(UserSettings(user_id=USER_ID, auto_sync_interval_hours=4))
        await db_session.commit()

        assert await find_users_due(db_session, NOW) == [USER_ID]

    async def test_inactive_accounts_never_due(self, db_session):
        await make_account(db_session, Platform.TIKTOK, is_active=False)
        assert await find_users_due(db_session, NOW) == []
