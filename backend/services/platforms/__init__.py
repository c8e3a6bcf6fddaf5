"""Platform adapters, selected by platform."""

from typing import Optional

import httpx

from errors import UnsupportedPlatform
from models.social_account import Platform
from services.platforms.common import AccountMetrics, PlatformAdapter, PlatformPost
from services.platforms.facebook import FacebookAdapter
from services.platforms.instagram import InstagramAdapter
from services.platforms.tiktok import TikTokAdapter
from services.platforms.twitter import TwitterAdapter
from services.platforms.youtube import YouTubeAdapter

ADAPTERS = {
    Platform.INSTAGRAM: InstagramAdapter,
    Platform.TWITTER: TwitterAdapter,
    Platform.TIKTOK: TikTokAdapter,
    Platform.FACEBOOK: FacebookAdapter,
    Platform.YOUTUBE: YouTubeAdapter,
}


def create_adapter(
    platform: Platform | str,
    access_token: str,
    refresh_token: Optional[str] = None,
    *,
    client: httpx.AsyncClient,
) -> PlatformAdapter:
    """Build the adapter for a platform around a shared HTTP client."""
    try:
        adapter_cls = ADAPTERS[Platform(platform)]
    except (KeyError, ValueError):
        raise UnsupportedPlatform(str(platform)) from None
    return adapter_cls(access_token, refresh_token, client=client)


__all__ = [
    "ADAPTERS",
    "AccountMetrics",
    "PlatformAdapter",
    "PlatformPost",
    "create_adapter",
]
