"""Social accounts router - list, sync, refresh and disconnect connected accounts."""

import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import CurrentUser
from models.social_account import SocialAccount, as_utc
from services import account_store, account_sync
from services.account_sync import AccountSyncResult

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/social-accounts", tags=["social-accounts"])


# ============== Response Models ==============

class SocialAccountResponse(BaseModel):
    """A connected account. Tokens are never serialized."""
    id: str
    platform: str
    external_account_id: str
    username: str
    is_active: bool
    is_expired: bool
    has_refresh_token: bool
    scope: Optional[str]
    token_expires_at: Optional[datetime]
    last_synced_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_account(cls, account: SocialAccount) -> "SocialAccountResponse":
        return cls(
            id=account.id,
            platform=account.platform.value,
            external_account_id=account.external_account_id,
            username=account.username,
            is_active=account.is_active,
            is_expired=account.is_expired(),
            has_refresh_token=bool(account.refresh_token),
            scope=account.scope,
            token_expires_at=as_utc(account.token_expires_at),
            last_synced_at=as_utc(account.last_synced_at),
            created_at=as_utc(account.created_at),
        )


class SyncResponse(BaseModel):
    success: bool = True
    account_id: str
    platform: str
    followers: int
    engagement_rate: float
    posts_synced: int
    token_refreshed: bool
    synced_at: datetime


class SyncAllResponse(BaseModel):
    success: bool
    synced: int
    failed: int
    results: list[AccountSyncResult]


class MessageResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


# ============== Endpoints ==============

@router.get("", response_model=list[SocialAccountResponse])
async def list_social_accounts(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List the caller's connected accounts."""
    accounts = await account_store.list_accounts(db, current_user.user_id)
    return [SocialAccountResponse.from_account(a) for a in accounts]


@router.post("/sync-all", response_model=SyncAllResponse)
async def sync_all(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Sync every active account. Per-account failures are reported, not raised."""
    results = await account_sync.sync_all_accounts(db, current_user.user_id)
    synced = sum(1 for r in results if r.success)
    return SyncAllResponse(
        success=synced == len(results),
        synced=synced,
        failed=len(results) - synced,
        results=results,
    )


@router.post("/{account_id}/sync", response_model=SyncResponse)
async def sync_social_account(
    account_id: str,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await account_sync.sync_account(db, current_user.user_id, account_id)
    return SyncResponse(**result.model_dump())


@router.post("/{account_id}/refresh-token", response_model=MessageResponse)
async def refresh_token(
    account_id: str,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Check the account's token and refresh it if needed.

    Failures surface as 400 with requires_reauth set.
    """
    outcome = await account_sync.refresh_account_token(db, current_user.user_id, account_id)
    if outcome == "refreshed":
        return MessageResponse(message="Token refreshed successfully")
    return MessageResponse(message="Token is still valid")


@router.delete("/{account_id}", response_model=MessageResponse)
async def disconnect_social_account(
    account_id: str,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Disconnect an account and drop its stored metrics and posts."""
    await account_store.delete_account(db, current_user.user_id, account_id)
    return MessageResponse(message="Account disconnected")
