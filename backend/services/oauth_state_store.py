"""Redis-based storage for pending OAuth authorization attempts.

Each attempt is keyed by its anti-CSRF state token and remembers who started
it, for which platform, and the PKCE code verifier (Twitter). Entries expire
after OAUTH_STATE_TTL_SECONDS and are deleted on first read.
"""

import json
from typing import Optional

import redis.asyncio as redis
from pydantic import BaseModel

from config import get_settings

settings = get_settings()

# Redis key prefix
STATE_PREFIX = "dashboard:oauth_state:"


class PendingAuthorization(BaseModel):
    """An authorization request waiting for its provider callback."""
    platform: str
    user_id: str
    code_verifier: Optional[str] = None


class OAuthStateStore:
    """Async Redis store for OAuth state tokens."""

    _pool: redis.Redis | None = None

    @classmethod
    async def get_client(cls) -> redis.Redis:
        """Get or create Redis connection pool."""
        if cls._pool is None:
            cls._pool = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return cls._pool

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection pool."""
        if cls._pool is not None:
            await cls._pool.aclose()
            cls._pool = None

    @classmethod
    async def save_pending(cls, state: str, pending: PendingAuthorization) -> None:
        """Store a pending attempt under its state token with a TTL."""
        client = await cls.get_client()
        await client.set(
            f"{STATE_PREFIX}{state}",
            pending.model_dump_json(),
            ex=settings.oauth_state_ttl_seconds,
        )

    @classmethod
    async def pop_pending(cls, state: str) -> PendingAuthorization | None:
        """Fetch and delete a pending attempt. Returns None if unknown or expired."""
        client = await cls.get_client()
        key = f"{STATE_PREFIX}{state}"
        async with client.pipeline(transaction=True) as pipe:
            pipe.get(key)
            pipe.delete(key)
            data, _ = await pipe.execute()

        if data is None:
            return None
        return PendingAuthorization(**json.loads(data))

    @classmethod
    async def health_check(cls) -> bool:
        """Check Redis connectivity."""
        try:
            client = await cls.get_client()
            await client.ping()
            return True
        except redis.RedisError:
            return False
