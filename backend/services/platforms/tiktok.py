"""TikTok adapter (TikTok for Developers API v2)."""

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
    parse_epoch_seconds,
    probe,
)

logger = logging.getLogger(__name__)
settings = get_settings()

TIKTOK_API_BASE = "https://open.tiktokapis.com/v2"


class TikTokAdapter:
    platform = Platform.TIKTOK

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

    async def fetch_metrics(self) -> AccountMetrics:
        data = check_response(
            self.platform,
            await self._client.get(
                f"{TIKTOK_API_BASE}/user/info/",
                params={"fields": "open_id,display_name,follower_count,following_count"},
                headers=self._headers,
            ),
        )
        payload = data.get("data") or {}
        user = payload.get("user") or payload
        return AccountMetrics(
            followers=as_int(user.get("follower_count")),
            following=as_int(user.get("following_count")),
        )

    async def fetch_posts(self, limit: int = 10) -> list[PlatformPost]:
        data = check_response(
            self.platform,
            await self._client.post(
                f"{TIKTOK_API_BASE}/video/list/",
                params={
                    "fields": "id,title,video_description,cover_image_url,like_count,"
                              "comment_count,share_count,view_count,create_time",
                },
                json={"max_count": min(limit, 20)},
                headers=self._headers,
            ),
        )

        videos = (data.get("data") or {}).get("videos", [])
        return [
            PlatformPost(
                id=str(video["id"]),
                content=video.get("title") or video.get("video_description") or "",
                image_url=video.get("cover_image_url"),
                likes=as_int(video.get("like_count")),
                comments=as_int(video.get("comment_count")),
                shares=as_int(video.get("share_count")),
                views=as_int(video.get("view_count")),
                posted_at=parse_epoch_seconds(video.get("create_time")),
            )
            for video in videos[:limit]
            if video.get("id")
        ]

    async def refresh_access_token(self) -> OAuthTokens:
        if not self.refresh_token:
            raise ReauthRequired("TikTok account has no refresh token")

        client_key, client_secret = settings.platform_credentials(self.platform.value)
        data = check_response(
            self.platform,
            await self._client.post(
                f"{TIKTOK_API_BASE}/oauth/token/",
                data={
                    "client_key": client_key,
                    "client_secret": client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                },
            ),
        )
        return parse_token_response(self.platform, data)

    async def is_token_valid(self) -> bool:
        return await probe(
            self._client,
            f"{TIKTOK_API_BASE}/user/info/",
            params={"fields": "open_id"},
            headers=self._headers,
        )
