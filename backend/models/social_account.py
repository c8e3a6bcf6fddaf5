"""Connected social media accounts and their OAuth tokens."""

import enum
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Platform(str, enum.Enum):
    """Supported social platforms."""
    INSTAGRAM = "instagram"
    TWITTER = "twitter"
    TIKTOK = "tiktok"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SocialAccount(Base):
    """A user's connected account on one platform.

    Created on a successful OAuth exchange, mutated on sync/refresh/disable,
    deleted on disconnect (snapshots and posts go with it).
    """

    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "platform", "external_account_id",
            name="uix_social_accounts_user_platform_external",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    platform: Mapped[Platform] = mapped_column(
        Enum(Platform, values_callable=lambda enum: [e.value for e in enum]),
        nullable=False
    )

    # External identity
    external_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str] = mapped_column(String(255), nullable=False)

    # OAuth tokens
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    snapshots = relationship(
        "MetricSnapshot", back_populates="account", cascade="all, delete-orphan"
    )
    posts = relationship(
        "Post", back_populates="account", cascade="all, delete-orphan"
    )

    def is_expired(self) -> bool:
        """Check if the token is past its recorded expiry."""
        if not self.token_expires_at:
            return False
        return datetime.now(timezone.utc) >= as_utc(self.token_expires_at)

    def __repr__(self) -> str:
        return f"<SocialAccount {self.platform.value}: {self.username}>"
