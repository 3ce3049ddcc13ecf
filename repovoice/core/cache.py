"""
Redis cache implementation for style profile caching and
shared learning-gate state.
"""

from typing import Optional

import redis.asyncio as redis

from repovoice.core.config import settings


class RedisCache:
    """
    Redis cache manager with typed key patterns.

    Key Patterns:
    - style_profile:{user_id} - Profile cached by content generation, dropped after learning
    - evolution_score:{user_id} - Profile evolution score (TTL: 5 minutes)

    The learning:* gate keys share this client but are owned by
    RedisGateBackend.
    """

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is None:
            self._client = redis.from_url(
                str(settings.redis_url),
                encoding="utf-8",
                decode_responses=True,
            )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._client

    # Style Profile Cache
    async def invalidate_style_profile(self, user_id: str) -> None:
        """Invalidate style profile cache."""
        await self.client.delete(f"style_profile:{user_id}")

    # Evolution Score Cache
    async def set_evolution_score(self, user_id: str, score: int) -> None:
        """Store evolution score with 5 minute TTL."""
        key = f"evolution_score:{user_id}"
        await self.client.setex(key, settings.redis_evolution_score_ttl, str(score))

    async def get_evolution_score(self, user_id: str) -> Optional[int]:
        """Retrieve cached evolution score."""
        data = await self.client.get(f"evolution_score:{user_id}")
        return int(data) if data is not None else None

    async def invalidate_evolution_score(self, user_id: str) -> None:
        """Invalidate evolution score cache."""
        await self.client.delete(f"evolution_score:{user_id}")


# Global cache instance
cache = RedisCache()
