"""Per-user dashboard preferences."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class UserSettings(Base):
    """Report and auto-sync preferences, keyed by identity-provider user id."""

    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    report_frequency: Mapped[str] = mapped_column(String(20), default="weekly")  # daily, weekly, manual
    report_format: Mapped[str] = mapped_column(String(10), default="pdf")  # pdf, csv, json
    report_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    auto_sync_interval_hours: Mapped[int] = mapped_column(Integer, default=24)
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

    def __repr__(self) -> str:
        return f"<UserSettings {self.user_id}: {self.report_frequency}>"
