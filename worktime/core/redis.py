import redis.asyncio as redis
from worktime.core.config import settings
import logging

logger = logging.getLogger(__name__)

class RedisClient:
    """
    Thin holder for one asyncio Redis connection pool.

    A pool is bound to the event loop that created it, so callers that run on
    short-lived loops (Celery tasks) create their own client and disconnect it.
    """

    def __init__(self, url: str = None):
        self.url = url or settings.REDIS_URL
        self.redis = None

    async def connect(self):
        try:
            self.redis = redis.from_url(self.url, decode_responses=True)
            await self.redis.ping()
            logger.info("✅ Redis connected")
        except Exception as e:
            logger.error(f"❌ Redis connection failed: {str(e)}")
            self.redis = None
            raise

    async def disconnect(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.debug("Redis disconnected")

    async def lock(self, name: str, timeout: float, blocking_timeout: float = None):
        """
        redis-py asyncio Lock that expires after `timeout` seconds.
        blocking_timeout=0 makes acquire() return immediately when the lock is taken.
        """
        if not self.redis:
            await self.connect()
        return self.redis.lock(name, timeout=timeout, blocking_timeout=blocking_timeout)
