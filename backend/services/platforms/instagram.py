"""Instagram adapter (Instagram Graph API with Instagram Login).

Instagram exposes no share or view counts for media, so those default to 0.
Long-lived tokens are refreshed in place with ig_refresh_token.
"""

import logging
from typing import Optional

import httpx

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

IG_GRAPH_BASE = "https://graph.instagram.com"


class InstagramAdapter:
    platform = Platform.INSTAGRAM

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
        """Fetch follower counts plus day-level impressions/reach insights."""
        profile = check_response(
            self.platform,
            await self._client.get(
                f"{IG_GRAPH_BASE}/me",
                params={
                    "fields": "id,username,followers_count,follows_count,media_count",
                    "access_token": self.access_token,
                },
            ),
        )

        insights_data = check_response(
            self.platform,
            await self._client.get(
                f"{IG_GRAPH_BASE}/me/insights",
                params={
                    "metric": "impressions,reach",
                    "period": "day",
                    "access_token": self.access_token,
                },
            ),
        )
        insights: dict[str, int] = {}
        for metric in insights_data.get("data", []):
            values = metric.get("values") or [{}]
            insights[metric.get("name", "")] = as_int(values[0].get("value"))

        metrics = AccountMetrics(
            followers=as_int(profile.get("followers_count")),
            following=as_int(profile.get("follows_count")),
            impressions=insights.get("impressions", 0),
            reach=insights.get("reach", 0),
        )
        logger.info(
            f"Instagram metrics fetched for @{profile.get('username')}: "
            f"{metrics.followers} followers"
        )
        return metrics

    async def fetch_posts(self, limit: int = 10) -> list[PlatformPost]:
        data = check_response(
            self.platform,
            await self._client.get(
                f"{IG_GRAPH_BASE}/me/media",
                params={
                    "fields": "id,caption,media_type,media_url,thumbnail_url,permalink,"
                              "timestamp,like_count,comments_count",
                    "limit": min(limit, 100),
                    "access_token": self.access_token,
                },
            ),
        )

        return [
            PlatformPost(
                id=str(item["id"]),
                content=item.get("caption") or "",
                image_url=item.get("media_url") or item.get("thumbnail_url"),
                likes=as_int(item.get("like_count")),
                comments=as_int(item.get("comments_count")),
                posted_at=parse_iso_datetime(item.get("timestamp")),
            )
            for item in data.get("data", [])[:limit]
            if item.get("id")
        ]

    async def refresh_access_token(self) -> OAuthTokens:
        data = check_response(
            self.platform,
            await self._client.get(
                f"{IG_GRAPH_BASE}/refresh_access_token",
                params={
                    "grant_type": "ig_refresh_token",
                    "access_token": self.access_token,
                },
            ),
        )
        return parse_token_response(self.platform, data)

    async def is_token_valid(self) -> bool:
        return await probe(
            self._client,
            f"{IG_GRAPH_BASE}/me",
            params={"fields": "id", "access_token": self.access_token},
        )
