"""User settings router - report and auto-sync preferences."""

from datetime import datetime
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import CurrentUser
from models.social_account import as_utc
from models.user_settings import UserSettings
from services import account_store

router = APIRouter(prefix="/user", tags=["user"])


class UserSettingsResponse(BaseModel):
    user_id: str
    report_frequency: str
    report_format: str
    report_email: Optional[str]
    auto_sync_interval_hours: int
    updated_at: datetime

    @classmethod
    def from_settings(cls, user_settings: UserSettings) -> "UserSettingsResponse":
        return cls(
            user_id=user_settings.user_id,
            report_frequency=user_settings.report_frequency,
            report_format=user_settings.report_format,
            report_email=user_settings.report_email,
            auto_sync_interval_hours=user_settings.auto_sync_interval_hours,
            updated_at=as_utc(user_settings.updated_at),
        )


class UserSettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""
    report_frequency: Optional[Literal["daily", "weekly", "manual"]] = None
    report_format: Optional[Literal["pdf", "csv", "json"]] = None
    report_email: Optional[str] = Field(None, max_length=255)
    auto_sync_interval_hours: Optional[int] = Field(None, ge=1, le=168)


@router.get("/settings", response_model=UserSettingsResponse)
async def read_user_settings(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user_settings = await account_store.get_user_settings(db, current_user.user_id)
    return UserSettingsResponse.from_settings(user_settings)


@router.put("/settings", response_model=UserSettingsResponse)
async def write_user_settings(
    body: UserSettingsUpdate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user_settings = await account_store.update_user_settings(
        db, current_user.user_id, body.model_dump(exclude_unset=True)
    )
    return UserSettingsResponse.from_settings(user_settings)
