"""Shared types and helpers for platform adapters.

Every platform implements the PlatformAdapter capability set on its own;
there is no base class. The helpers here only cover response checking and
defensive number/timestamp parsing.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel

from errors import UpstreamAPIError
from models.social_account import Platform
from services.oauth_service import OAuthTokens

logger = logging.getLogger(__name__)


class AccountMetrics(BaseModel):
    """Account-level numbers. Anything the platform omits is 0."""
    followers: int = 0
    following: int = 0
    engagement_rate: float = 0.0
    impressions: int = 0
    reach: int = 0


class PlatformPost(BaseModel):
    """A post/tweet/video mapped into the common shape."""
    id: str
    content: str = ""
    image_url: Optional[str] = None
    likes: int = 0
    comments: int = 0
    shares: int = 0
    views: int = 0
    posted_at: Optional[datetime] = None


class PlatformAdapter(Protocol):
    """Capabilities every platform integration provides."""

    platform: Platform

    async def fetch_metrics(self) -> AccountMetrics: ...

    async def fetch_posts(self, limit: int = 10) -> list[PlatformPost]: ...

    async def refresh_access_token(self) -> OAuthTokens: ...

    async def is_token_valid(self) -> bool: ...


def as_int(value: Any) -> int:
    """Coerce API numbers (sometimes strings, sometimes missing) to int."""
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def parse_iso_datetime(val: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime string, returning None on failure."""
    if not val:
        return None
    try:
        # Instagram uses +0000, YouTube/X use a trailing Z
        val = val.replace("Z", "+00:00")
        if len(val) > 5 and val[-5] in "+-" and val[-3] != ":":
            val = f"{val[:-2]}:{val[-2:]}"
        return datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None


def parse_epoch_seconds(val: Any) -> Optional[datetime]:
    """Parse a second-resolution epoch timestamp."""
    if not val:
        return None
    try:
        return datetime.fromtimestamp(int(val), tz=timezone.utc)
    except (ValueError, TypeError, OSError):
        return None


def check_response(platform: Platform, response: httpx.Response) -> dict[str, Any]:
    """Return the JSON body of a 2xx response, raise UpstreamAPIError otherwise."""
    if not response.is_success:
        logger.warning(
            f"{platform.value} API error: {response.status_code} - {response.text}"
        )
        raise UpstreamAPIError(platform.value, response.status_code, response.text)
    try:
        return response.json()
    except ValueError as e:
        logger.warning(f"{platform.value} API returned a non-JSON body: {e}")
        raise UpstreamAPIError(platform.value, response.status_code, response.text) from e


async def probe(client: httpx.AsyncClient, url: str, **kwargs: Any) -> bool:
    """Authenticated GET that reports success; network failure counts as invalid."""
    try:
        response = await client.get(url, **kwargs)
    except httpx.HTTPError as e:
        logger.warning(f"Token probe failed for {url}: {e}")
        return False
    return response.is_success
