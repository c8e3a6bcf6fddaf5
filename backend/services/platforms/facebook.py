"""Facebook adapter (Graph API, page tokens).

Page follower counts fall back to fan_count for older pages. Views are not
exposed without the insights API and default to 0.
"""

import logging
from typing import Optional

import httpx

from config import get_settings
from models.social_account import Platform
from services.oauth_service import OAuthTokens, parse_token_response
from services.platforms.common import (
    AccountMetrics,
    PlatformPost,
    as_int,
    check_response,
    parse_iso_datetime,
    probe,
)

logger = logging.getLogger(__name__)
settings = get_settings()

FB_GRAPH_BASE = "https://graph.facebook.com/v22.0"


class FacebookAdapter:
    platform = Platform.FACEBOOK

    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        *,
        client: httpx.AsyncClient,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self._client = client

    async def fetch_metrics(self) -> AccountMetrics:
        data = check_response(
            self.platform,
            await self._client.get(
                f"{FB_GRAPH_BASE}/me",
                params={
                    "fields": "name,followers_count,fan_count",
                    "access_token": self.access_token,
                },
            ),
        )
        followers = as_int(data.get("followers_count")) or as_int(data.get("fan_count"))
        logger.info(f"Facebook page stats fetched for {data.get('name')}: {followers} followers")
        return AccountMetrics(followers=followers)

    async def fetch_posts(self, limit: int = 10) -> list[PlatformPost]:
        data = check_response(
            self.platform,
            await self._client.get(
                f"{FB_GRAPH_BASE}/me/posts",
                params={
                    "fields": "id,message,full_picture,created_time,"
                              "likes.summary(true),comments.summary(true),shares",
                    "limit": min(limit, 100),
                    "access_token": self.access_token,
                },
            ),
        )

        return [
            PlatformPost(
                id=str(post["id"]),
                content=post.get("message") or "",
                image_url=post.get("full_picture"),
                likes=as_int(post.get("likes", {}).get("summary", {}).get("total_count")),
                comments=as_int(post.get("comments", {}).get("summary", {}).get("total_count")),
                shares=as_int(post.get("shares", {}).get("count")),
                posted_at=parse_iso_datetime(post.get("created_time")),
            )
            for post in data.get("data", [])[:limit]
            if post.get("id")
        ]

    async def refresh_access_token(self) -> OAuthTokens:
        """Exchange the current token for a fresh long-lived one."""
        client_id, client_secret = settings.platform_credentials(self.platform.value)
        data = check_response(
            self.platform,
            await self._client.get(
                f"{FB_GRAPH_BASE}/oauth/access_token",
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "fb_exchange_token": self.access_token,
                },
            ),
        )
        return parse_token_response(self.platform, data)

    async def is_token_valid(self) -> bool:
        return await probe(
            self._client,
            f"{FB_GRAPH_BASE}/me",
            params={"access_token": self.access_token},
        )
