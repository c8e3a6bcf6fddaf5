"""Routers package."""

from .dashboard import router as dashboard_router
from .oauth import router as oauth_router
from .reports import router as reports_router
from .social_accounts import router as social_accounts_router
from .users import router as users_router

__all__ = [
    "dashboard_router",
    "oauth_router",
    "reports_router",
    "social_accounts_router",
    "users_router",
]
