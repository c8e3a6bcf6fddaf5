"""OAuth broker for connecting social accounts.

Builds provider authorization URLs, exchanges authorization codes for tokens
and looks up who authorized. Every provider has its own token request shape
and response body; both are normalized here into OAuthTokens and an
(external_id, username) pair so the rest of the app never sees the variants.
"""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from config import get_settings
from errors import (
    MissingCredentials,
    NoAccessToken,
    TokenExchangeFailed,
    UnsupportedPlatform,
    UpstreamAPIError,
)
from models.social_account import Platform
from services.http_client import client_scope, response_body
from services.oauth_state_store import OAuthStateStore, PendingAuthorization

logger = logging.getLogger(__name__)
settings = get_settings()

FB_GRAPH_BASE = "https://graph.facebook.com/v22.0"


@dataclass(frozen=True)
class PlatformEndpoints:
    authorize_url: str
    token_url: str
    user_info_url: str
    scope: str


PLATFORM_ENDPOINTS: dict[Platform, PlatformEndpoints] = {
    Platform.INSTAGRAM: PlatformEndpoints(
        authorize_url="https://api.instagram.com/oauth/authorize",
        token_url="https://api.instagram.com/oauth/access_token",
        user_info_url="https://graph.instagram.com/me",
        scope="user_profile,user_media",
    ),
    Platform.TWITTER: PlatformEndpoints(
        authorize_url="https://twitter.com/i/oauth2/authorize",
        token_url="https://api.twitter.com/2/oauth2/token",
        user_info_url="https://api.twitter.com/2/users/me",
        scope="tweet.read users.read offline.access",
    ),
    Platform.FACEBOOK: PlatformEndpoints(
        authorize_url="https://www.facebook.com/v22.0/dialog/oauth",
        token_url=f"{FB_GRAPH_BASE}/oauth/access_token",
        user_info_url=f"{FB_GRAPH_BASE}/me",
        scope="pages_read_engagement,pages_read_user_content",
    ),
    Platform.TIKTOK: PlatformEndpoints(
        authorize_url="https://www.tiktok.com/v2/auth/authorize/",
        token_url="https://open.tiktokapis.com/v2/oauth/token/",
        user_info_url="https://open.tiktokapis.com/v2/user/info/",
        scope="user.info.basic,user.info.stats,video.list",
    ),
    Platform.YOUTUBE: PlatformEndpoints(
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        user_info_url="https://www.googleapis.com/youtube/v3/channels",
        scope="https://www.googleapis.com/auth/youtube.readonly",
    ),
}


class OAuthTokens(BaseModel):
    """Provider tokens normalized across platforms."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None

    def expires_at(self, now: Optional[datetime] = None) -> Optional[datetime]:
        if not self.expires_in:
            return None
        return (now or datetime.now(timezone.utc)) + timedelta(seconds=self.expires_in)


# ============== Platform configuration ==============

def resolve_platform(platform: str) -> Platform:
    """Map a path/query value onto the Platform enum."""
    try:
        return Platform(platform)
    except ValueError:
        raise UnsupportedPlatform(platform) from None


def is_platform_configured(platform: str) -> bool:
    """True only for known platforms with both client id and secret set."""
    try:
        resolved = resolve_platform(platform)
    except UnsupportedPlatform:
        logger.error(f"Unsupported platform: {platform}")
        return False

    client_id, client_secret = settings.platform_credentials(resolved.value)
    if not client_id or not client_secret:
        logger.error(
            f"Missing OAuth credentials for {platform}. Please check environment variables."
        )
        return False
    return True


def _require_configured(platform: str) -> tuple[Platform, str, str]:
    resolved = resolve_platform(platform)
    client_id, client_secret = settings.platform_credentials(resolved.value)
    if not client_id or not client_secret:
        raise MissingCredentials(resolved.value)
    return resolved, client_id, client_secret


def redirect_uri(platform: str) -> str:
    """Fixed callback URL registered with each provider."""
    return f"{settings.base_url.rstrip('/')}/oauth/{platform}/callback"


def generate_pkce_pair() -> tuple[str, str]:
    """Return (code_verifier, S256 code_challenge) per RFC 7636."""
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


# ============== Authorization ==============

async def build_authorization_url(platform: str, user_id: str) -> str:
    """Build the provider authorization URL and remember the pending attempt.

    The state token, the requesting user and (for Twitter) the PKCE verifier
    are stored together so the callback can finish the exchange.
    """
    resolved, client_id, _ = _require_configured(platform)
    endpoints = PLATFORM_ENDPOINTS[resolved]
    state = secrets.token_urlsafe(24)

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri(resolved.value),
        "scope": endpoints.scope,
        "response_type": "code",
        "state": state,
    }

    code_verifier = None
    if resolved is Platform.TWITTER:
        code_verifier, code_challenge = generate_pkce_pair()
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"
    elif resolved is Platform.TIKTOK:
        params["client_key"] = client_id
    elif resolved is Platform.YOUTUBE:
        # Google only issues refresh tokens for offline access with consent
        params["access_type"] = "offline"
        params["prompt"] = "consent"

    await OAuthStateStore.save_pending(
        state,
        PendingAuthorization(
            platform=resolved.value,
            user_id=user_id,
            code_verifier=code_verifier,
        ),
    )
    return f"{endpoints.authorize_url}?{urlencode(params)}"


async def consume_oauth_state(
    state: Optional[str], platform: str
) -> Optional[PendingAuthorization]:
    """Verify and burn a state token. Returns None if unknown, expired or for another platform."""
    if not state:
        return None
    pending = await OAuthStateStore.pop_pending(state)
    if pending is None or pending.platform != platform:
        return None
    return pending


# ============== Token exchange ==============

async def exchange_code_for_tokens(
    platform: str,
    code: str,
    code_verifier: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> OAuthTokens:
    """Exchange an authorization code for tokens.

    Raises TokenExchangeFailed on any non-2xx response (with the provider's
    error body attached) and NoAccessToken if the body carries no token.
    """
    resolved, client_id, client_secret = _require_configured(platform)
    endpoints = PLATFORM_ENDPOINTS[resolved]
    callback = redirect_uri(resolved.value)

    async with client_scope(client) as http:
        if resolved is Platform.INSTAGRAM:
            response = await http.post(
                endpoints.token_url,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "grant_type": "authorization_code",
                    "redirect_uri": callback,
                    "code": code,
                },
            )
        elif resolved is Platform.TWITTER:
            if not code_verifier:
                raise TokenExchangeFailed(resolved.value, 0, "missing PKCE code verifier")
            response = await http.post(
                endpoints.token_url,
                data={
                    "client_id": client_id,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": callback,
                    "code_verifier": code_verifier,
                },
                auth=(client_id, client_secret),
            )
        elif resolved is Platform.FACEBOOK:
            response = await http.get(
                endpoints.token_url,
                params={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "code": code,
                    "redirect_uri": callback,
                },
            )
        elif resolved is Platform.TIKTOK:
            response = await http.post(
                endpoints.token_url,
                data={
                    "client_key": client_id,
                    "client_secret": client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": callback,
                },
            )
        else:
            response = await http.post(
                endpoints.token_url,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": callback,
                },
            )

    if not response.is_success:
        body = response_body(response)
        logger.warning(f"Token exchange failed for {platform}: {response.status_code} - {body}")
        raise TokenExchangeFailed(resolved.value, response.status_code, body)

    return parse_token_response(resolved, response.json())


def parse_token_response(platform: Platform, payload: dict[str, Any]) -> OAuthTokens:
    """Normalize a provider token body.

    TikTok's v1 API wrapped tokens in a "data" envelope; v2 returns them flat.
    Instagram and Facebook never issue refresh tokens.
    """
    if platform is Platform.TIKTOK and isinstance(payload.get("data"), dict):
        payload = payload["data"]

    access_token = payload.get("access_token")
    if not access_token:
        raise NoAccessToken(f"No access token in {platform.value} token response")

    expires_in = payload.get("expires_in")
    return OAuthTokens(
        access_token=access_token,
        refresh_token=payload.get("refresh_token"),
        expires_in=int(expires_in) if expires_in else None,
        token_type=payload.get("token_type"),
        scope=payload.get("scope"),
    )


# ============== Identity ==============

async def fetch_user_info(
    platform: str,
    access_token: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """Fetch the authorizing identity. Raises UpstreamAPIError on non-2xx."""
    resolved = resolve_platform(platform)
    url = PLATFORM_ENDPOINTS[resolved].user_info_url
    bearer = {"Authorization": f"Bearer {access_token}"}

    async with client_scope(client) as http:
        if resolved is Platform.INSTAGRAM:
            response = await http.get(
                url, params={"fields": "id,username", "access_token": access_token}
            )
        elif resolved is Platform.TWITTER:
            response = await http.get(url, params={"user.fields": "username"}, headers=bearer)
        elif resolved is Platform.FACEBOOK:
            response = await http.get(
                url, params={"fields": "id,name", "access_token": access_token}
            )
        elif resolved is Platform.TIKTOK:
            response = await http.get(
                url, params={"fields": "open_id,display_name"}, headers=bearer
            )
        else:
            response = await http.get(
                url, params={"part": "snippet", "mine": "true"}, headers=bearer
            )

    if not response.is_success:
        raise UpstreamAPIError(resolved.value, response.status_code, response.text)
    return response.json()


def extract_identity(platform: str, user_info: dict[str, Any]) -> tuple[str, str]:
    """Pull (external_account_id, display username) out of a user-info payload.

    Handle-based platforms get "@handle"; Facebook pages and YouTube channels
    use their display name.

    Raises UpstreamAPIError when the payload carries no account id.
    """
    resolved = resolve_platform(platform)

    if resolved is Platform.INSTAGRAM:
        raw_id, handle, name = user_info.get("id"), user_info.get("username"), None
    elif resolved is Platform.TWITTER:
        data = user_info.get("data") or user_info
        raw_id, handle, name = data.get("id"), data.get("username"), None
    elif resolved is Platform.FACEBOOK:
        raw_id, handle, name = user_info.get("id"), None, user_info.get("name")
    elif resolved is Platform.TIKTOK:
        data = user_info.get("data") or user_info
        user = data.get("user") or data
        raw_id, handle, name = (
            user.get("open_id"), user.get("display_name") or user.get("username"), None
        )
    else:
        items = user_info.get("items") or []
        channel = items[0] if items else {}
        snippet = channel.get("snippet", {})
        raw_id, handle, name = (
            channel.get("id"), None, snippet.get("title") or snippet.get("customUrl")
        )

    if not raw_id:
        raise UpstreamAPIError(resolved.value, 200, "user info carried no account id")

    external_id = str(raw_id)
    if resolved in (Platform.FACEBOOK, Platform.YOUTUBE):
        return external_id, name or external_id
    return external_id, f"@{handle or external_id}"


async def validate_access_token(
    platform: str,
    access_token: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Probe the provider's "who am I" endpoint.

    Any non-2xx or transport failure counts as invalid.
    """
    try:
        await fetch_user_info(platform, access_token, client=client)
        return True
    except UnsupportedPlatform:
        return False
    except (UpstreamAPIError, httpx.HTTPError) as e:
        logger.warning(f"Token validation failed for {platform}: {e}")
        return False
