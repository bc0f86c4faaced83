"""Redis client for caching geocoding results."""
import json
import logging
import redis
import redis.asyncio as aioredis
from typing import Optional, Any
from cityguide.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """JSON-over-Redis cache for async callers.

    Every failure is logged and reported as a miss so callers can treat the
    cache as optional. Keys are namespaced with ``prefix``.
    """

    def __init__(self, client: Optional[aioredis.Redis] = None, prefix: str = "cityguide"):
        self.prefix = prefix
        self.client = client or aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            decode_responses=True,
            socket_connect_timeout=2,
        )

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def get(self, key: str) -> Optional[Any]:
        """Decoded value for ``key``, or None on a miss or any cache failure."""
        try:
            value = await self.client.get(self._key(key))
            return json.loads(value) if value else None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis GET error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store ``value`` as JSON, expiring after ``ttl`` seconds when given."""
        try:
            serialized = json.dumps(value)
            if ttl:
                await self.client.setex(self._key(key), ttl, serialized)
            else:
                await self.client.set(self._key(key), serialized)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Redis SET error for {key}: {e}")
            return False

    async def aclose(self) -> None:
        await self.client.aclose()


# Global Redis client instance
redis_client = RedisClient()
