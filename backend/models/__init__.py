"""Database models."""

from database import Base

from models.social_account import Platform, SocialAccount
from models.metric_snapshot import MetricSnapshot
from models.post import Post
from models.report import Report
from models.user_settings import UserSettings

__all__ = [
    "Base",
    "Platform",
    "SocialAccount",
    "MetricSnapshot",
    "Post",
    "Report",
    "UserSettings",
]
