"""Post model - platform posts with engagement counts.

Re-syncing an account upserts by (account_id, provider_post_id), so a post
is stored once and its counts track the latest sync.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Post(Base):
    """Platform post with engagement metrics."""

    __tablename__ = "posts"
    __table_args__ = (
        UniqueConstraint("account_id", "provider_post_id", name="uix_posts_account_provider"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("social_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Post metadata
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_post_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Engagement metrics
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, default=0)
    share_count: Mapped[int] = mapped_column(Integer, default=0)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)

    # Sync metadata
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    account = relationship("SocialAccount", back_populates="posts")

    @property
    def interactions(self) -> int:
        return (self.like_count or 0) + (self.comment_count or 0) + (self.share_count or 0)

    def __repr__(self) -> str:
        return f"<Post {self.id}: {self.platform} - {self.interactions} interactions>"
