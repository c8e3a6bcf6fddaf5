"""OAuth router - connect social accounts through each provider's OAuth flow.

The browser-facing endpoints answer with redirects. Success and failure land
on the frontend settings page with query parameters describing the outcome.
POST /oauth/{platform}/start hands the authorization URL to an authenticated
frontend call instead.
"""

import logging
from typing import Annotated, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import get_db
from errors import DashboardError, NoAccessToken, OAuthDenied, UnsupportedPlatform
from middleware.auth import BrowserUser, CurrentUser
from middleware.rate_limit import OAUTH_START_LIMIT, limiter
from services import account_store, oauth_service
from services.http_client import client_scope

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/oauth", tags=["oauth"])
settings = get_settings()


class AuthUrlResponse(BaseModel):
    auth_url: str


def settings_redirect(**params: Optional[str]) -> RedirectResponse:
    """302 to the frontend settings page with the non-empty params."""
    query = urlencode({k: v for k, v in params.items() if v})
    return RedirectResponse(
        url=f"{settings.frontend_url.rstrip('/')}/settings?{query}",
        status_code=302,
    )


@router.post("/{platform}/start", response_model=AuthUrlResponse)
@limiter.limit(OAUTH_START_LIMIT)
async def oauth_start_url(
    request: Request,
    platform: str,
    current_user: CurrentUser,
):
    """Start the OAuth flow for a platform.

    Returns the authorization URL for the frontend to navigate to.
    """
    auth_url = await oauth_service.build_authorization_url(platform, current_user.user_id)
    return AuthUrlResponse(auth_url=auth_url)


@router.get("/{platform}")
@limiter.limit(OAUTH_START_LIMIT)
async def oauth_start(
    request: Request,
    platform: str,
    current_user: BrowserUser,
) -> RedirectResponse:
    """Start the OAuth flow for a platform by redirecting to the provider.

    Reached by browser navigation, so the session token may come as the
    `access_token` query parameter.
    """
    if current_user is None:
        return settings_redirect(error="unauthorized", platform=platform)

    try:
        auth_url = await oauth_service.build_authorization_url(platform, current_user.user_id)
    except UnsupportedPlatform as e:
        logger.warning(f"OAuth start rejected for {platform}: {e}")
        return settings_redirect(error="unsupported_platform", platform=platform)
    except Exception:
        logger.exception(f"OAuth initialization failed for {platform}")
        return settings_redirect(error="oauth_init_failed", platform=platform)

    logger.info(f"Redirecting user {current_user.user_id} to {platform} authorization")
    return RedirectResponse(url=auth_url, status_code=302)


@router.get("/{platform}/callback")
async def oauth_callback(
    platform: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
) -> RedirectResponse:
    """Provider callback: verify state, exchange the code and store the account.

    Called by the provider after user authorization, so there is no bearer
    token; the user is recovered from the pending state.
    """
    if error:
        logger.warning(f"OAuth denied for {platform}: {error} - {error_description}")
        return settings_redirect(
            error=OAuthDenied.error_code, platform=platform, details=error_description or error
        )

    if not code:
        return settings_redirect(error="missing_code", platform=platform)

    pending = await oauth_service.consume_oauth_state(state, platform)
    if pending is None:
        logger.warning(f"Invalid or expired OAuth state for {platform}")
        return settings_redirect(
            error="connection_failed", platform=platform, details="invalid_state"
        )

    try:
        async with client_scope() as http:
            tokens = await oauth_service.exchange_code_for_tokens(
                platform, code, pending.code_verifier, client=http
            )
            user_info = await oauth_service.fetch_user_info(
                platform, tokens.access_token, client=http
            )
        external_id, username = oauth_service.extract_identity(platform, user_info)

        account = await account_store.save_connected_account(
            db,
            user_id=pending.user_id,
            platform=oauth_service.resolve_platform(platform),
            external_account_id=external_id,
            username=username,
            tokens=tokens,
        )
    except NoAccessToken:
        return settings_redirect(error="no_token", platform=platform)
    except (DashboardError, httpx.HTTPError) as e:
        logger.warning(f"OAuth callback failed for {platform}: {e}")
        return settings_redirect(error="connection_failed", platform=platform, details=str(e))
    except Exception as e:
        logger.exception(f"Unexpected OAuth callback error for {platform}")
        return settings_redirect(error="connection_failed", platform=platform, details=str(e))

    return settings_redirect(connected=account.platform.value, username=account.username)
