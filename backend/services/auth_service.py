"""Authentication service - identity-provider (GoTrue) JWT verification.

Sessions are issued elsewhere; this service only checks the signature and
audience and extracts the subject, which becomes the caller's user id.
"""

from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from config import get_settings

settings = get_settings()


class TokenData(BaseModel):
    """Data extracted from a verified JWT."""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


class AuthService:
    """Verify bearer tokens."""

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Decode and validate a GoTrue JWT. Returns None if invalid or expired."""
        if not settings.gotrue_jwt_secret:
            return None
        try:
            payload = jwt.decode(
                token,
                settings.gotrue_jwt_secret,
                algorithms=[settings.jwt_algorithm],
                audience=settings.jwt_audience,
            )
        except JWTError:
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None
        return TokenData(
            user_id=user_id,
            email=payload.get("email"),
            role=payload.get("role"),
        )
