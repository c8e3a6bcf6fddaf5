"""YouTube adapter (Data API v3 with OAuth user tokens).

Subscribers are reported as followers and total channel views as
impressions. Videos come from the channel's uploads playlist, which lists
every upload reliably (unlike the Search API).
"""

import logging
from typing import Optional

import httpx

from config import get_settings
from errors import ReauthRequired
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

YT_API_BASE = "https://www.googleapis.com/youtube/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class YouTubeAdapter:
    platform = Platform.YOUTUBE

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

    async def _my_channel(self, part: str) -> dict:
        data = check_response(
            self.platform,
            await self._client.get(
                f"{YT_API_BASE}/channels",
                params={"part": part, "mine": "true"},
                headers=self._headers,
            ),
        )
        items = data.get("items", [])
        return items[0] if items else {}

    async def fetch_metrics(self) -> AccountMetrics:
        channel = await self._my_channel("statistics")
        statistics = channel.get("statistics", {})
        return AccountMetrics(
            followers=as_int(statistics.get("subscriberCount")),
            impressions=as_int(statistics.get("viewCount")),
        )

    async def fetch_posts(self, limit: int = 10) -> list[PlatformPost]:
        channel = await self._my_channel("contentDetails")
        uploads = (
            channel.get("contentDetails", {})
            .get("relatedPlaylists", {})
            .get("uploads")
        )
        if not uploads:
            logger.info("YouTube channel has no uploads playlist")
            return []

        playlist = check_response(
            self.platform,
            await self._client.get(
                f"{YT_API_BASE}/playlistItems",
                params={
                    "part": "contentDetails",
                    "playlistId": uploads,
                    "maxResults": min(limit, 50),
                },
                headers=self._headers,
            ),
        )
        video_ids = [
            item["contentDetails"]["videoId"]
            for item in playlist.get("items", [])
            if item.get("contentDetails", {}).get("videoId")
        ][:limit]
        if not video_ids:
            return []

        videos = check_response(
            self.platform,
            await self._client.get(
                f"{YT_API_BASE}/videos",
                params={"part": "snippet,statistics", "id": ",".join(video_ids)},
                headers=self._headers,
            ),
        )

        posts = []
        for video in videos.get("items", []):
            if not video.get("id"):
                continue
            snippet = video.get("snippet", {})
            statistics = video.get("statistics", {})
            posts.append(PlatformPost(
                id=str(video["id"]),
                content=snippet.get("title", ""),
                image_url=snippet.get("thumbnails", {}).get("medium", {}).get("url"),
                likes=as_int(statistics.get("likeCount")),
                comments=as_int(statistics.get("commentCount")),
                views=as_int(statistics.get("viewCount")),
                posted_at=parse_iso_datetime(snippet.get("publishedAt")),
            ))
        return posts

    async def refresh_access_token(self) -> OAuthTokens:
        if not self.refresh_token:
            raise ReauthRequired("YouTube account has no refresh token")

        client_id, client_secret = settings.platform_credentials(self.platform.value)
        data = check_response(
            self.platform,
            await self._client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                },
            ),
        )
        tokens = parse_token_response(self.platform, data)
        # Google keeps the original refresh token valid and omits it here
        if not tokens.refresh_token:
            tokens.refresh_token = self.refresh_token
        return tokens

    async def is_token_valid(self) -> bool:
        return await probe(
            self._client,
            f"{YT_API_BASE}/channels",
            params={"part": "id", "mine": "true"},
            headers=self._headers,
        )
