"""X/Twitter adapter (API v2 with OAuth 2.0 user tokens).

Replies count as comments, retweets as shares and impressions as views.
"""

import logging
from typing import Optional

import httpx

from models.social_account import Platform
from services.oauth_service import OAuthTokens
from services.platforms.common import (
    AccountMetrics,
    PlatformPost,
    as_int,
    check_response,
    parse_iso_datetime,
    probe,
)

logger = logging.getLogger(__name__)

X_API_BASE = "https://api.twitter.com/2"


class TwitterAdapter:
    platform = Platform.TWITTER

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

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _me(self, fields: str = "public_metrics") -> dict:
        data = check_response(
            self.platform,
            await self._client.get(
                f"{X_API_BASE}/users/me",
                params={"user.fields": fields},
                headers=self._headers,
            ),
        )
        return data.get("data", {})

    async def fetch_metrics(self) -> AccountMetrics:
        user = await self._me()
        metrics = user.get("public_metrics", {})
        logger.info(
            f"X stats fetched for @{user.get('username')}: "
            f"{metrics.get('followers_count', 0)} followers"
        )
        return AccountMetrics(
            followers=as_int(metrics.get("followers_count")),
            following=as_int(metrics.get("following_count")),
        )

    async def fetch_posts(self, limit: int = 10) -> list[PlatformPost]:
        user = await self._me(fields="id")
        user_id = user.get("id")
        if not user_id:
            return []

        data = check_response(
            self.platform,
            await self._client.get(
                f"{X_API_BASE}/users/{user_id}/tweets",
                params={
                    "tweet.fields": "public_metrics,created_at,attachments",
                    "expansions": "attachments.media_keys",
                    "media.fields": "url,preview_image_url",
                    # The timeline endpoint accepts 5..100
                    "max_results": max(5, min(limit, 100)),
                    "exclude": "retweets,replies",
                },
                headers=self._headers,
            ),
        )

        media_map = {
            media["media_key"]: media
            for media in data.get("includes", {}).get("media", [])
            if media.get("media_key")
        }

        posts = []
        for tweet in data.get("data", [])[:limit]:
            if not tweet.get("id"):
                continue
            metrics = tweet.get("public_metrics", {})
            media_keys = tweet.get("attachments", {}).get("media_keys", [])
            media = media_map.get(media_keys[0], {}) if media_keys else {}
            posts.append(PlatformPost(
                id=str(tweet["id"]),
                content=tweet.get("text", ""),
                image_url=media.get("url") or media.get("preview_image_url"),
                likes=as_int(metrics.get("like_count")),
                comments=as_int(metrics.get("reply_count")),
                shares=as_int(metrics.get("retweet_count")),
                views=as_int(metrics.get("impression_count")),
                posted_at=parse_iso_datetime(tweet.get("created_at")),
            ))
        return posts

    async def refresh_access_token(self) -> OAuthTokens:
        # Treated as non-expiring; the stored token is returned unchanged
        return OAuthTokens(access_token=self.access_token, refresh_token=self.refresh_token)

    async def is_token_valid(self) -> bool:
        return await probe(self._client, f"{X_API_BASE}/users/me", headers=self._headers)
