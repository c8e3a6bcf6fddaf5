"""Authentication middleware - JWT verification and user extraction."""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.auth_service import AuthService, TokenData

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> TokenData:
    """Extract and validate the current user from the bearer token.

    The token subject is the user id every query is scoped by.
    """
    token_data = AuthService.decode_token(credentials.credentials)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token_data


async def get_browser_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(optional_security)],
    access_token: Annotated[Optional[str], Query()] = None,
) -> Optional[TokenData]:
    """Resolve the user for top-level browser navigations.

    A navigation cannot set headers, so the token may also arrive as the
    `access_token` query parameter. Returns None instead of raising so the
    route can answer with a redirect.
    """
    token = credentials.credentials if credentials else access_token
    if not token:
        return None
    return AuthService.decode_token(token)


CurrentUser = Annotated[TokenData, Depends(get_current_user)]
BrowserUser = Annotated[Optional[TokenData], Depends(get_browser_user)]
