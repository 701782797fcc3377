"""
Cache Service: Redis caching with JSON serialization.

Cache failures are logged and treated as misses; Redis is never required for
a request to succeed.
"""
import redis.asyncio as redis
from app.utils.config import settings
import logging
import json

logger = logging.getLogger(__name__)


class CacheService:
    def __init__(self, namespace: str = "storefront"):
        self.redis_url = settings.REDIS_URL
        self.host = settings.REDIS_HOST
        self.port = settings.REDIS_PORT
        self.db = settings.REDIS_DB
        self.user = settings.REDIS_USERNAME
        self.pwd = settings.REDIS_PASSWORD
        self.ttl = settings.REDIS_CACHE_TTL
        self.namespace = namespace
        self.redis = None

    def build_url(self) -> str:
        url = self.redis_url or f"redis://{self.host}:{self.port}/{self.db}"
        if not url.startswith(("redis://", "rediss://")):
            url = f"redis://{url}"

        if "@" not in url and (self.user or self.pwd):
            prefix = "rediss://" if url.startswith("rediss://") else "redis://"
            host_part = url[len(prefix):]
            url = f"{prefix}{self.user or 'default'}:{self.pwd or ''}@{host_part}"
        return url

    async def connect(self):
        if not self.redis:
            self.redis = redis.from_url(self.build_url(), encoding="utf-8", decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get_json(self, key: str):
        await self.connect()
        try:
            data = await self.redis.get(self._key(key))
        except Exception as e:
            logger.warning(f"Redis get error for {key}: {e}")
            return None
        return json.loads(data) if data else None

    async def set_json(self, key: str, value, ttl: int = None):
        await self.connect()
        try:
            await self.redis.set(self._key(key), json.dumps(value, default=str), ex=ttl or self.ttl)
        except Exception as e:
            logger.warning(f"Redis set error for {key}: {e}")

    async def delete(self, key: str):
        await self.connect()
        try:
            await self.redis.delete(self._key(key))
        except Exception as e:
            logger.warning(f"Redis delete error for {key}: {e}")

    async def ping(self) -> bool:
        await self.connect()
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None


cache_service = CacheService()
