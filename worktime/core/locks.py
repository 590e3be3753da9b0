import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Dict, Optional, Tuple

from worktime.core.config import settings
from worktime.core.redis import RedisClient

logger = logging.getLogger(__name__)

LockKey = Tuple[int, date]


class AggregationLockRegistry:
    """
    Mutual exclusion for daily aggregation, one scope per (user, date).

    The in-process asyncio lock always applies. With AGGREGATION_LOCK_BACKEND=redis a
    Redis lock is taken inside it so API and worker processes serialize as well.
    """

    def __init__(self, backend: str = "local", timeout: int = 30):
        self.backend = backend
        self.timeout = timeout
        self._locks: Dict[LockKey, asyncio.Lock] = {}
        self._waiters: Dict[LockKey, int] = {}
        self._redis: Optional[RedisClient] = None
        self._redis_loop = None

    def _local_lock(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _redis_client(self) -> RedisClient:
        # redis.asyncio connections belong to the loop that opened them; Celery tasks run a fresh loop each time
        loop = asyncio.get_running_loop()
        if self._redis is None or self._redis_loop is not loop:
            self._redis = RedisClient()
            self._redis_loop = loop
        return self._redis

    @asynccontextmanager
    async def hold(self, user_id: int, attendance_date: date) -> AsyncIterator[None]:
        key = (user_id, attendance_date)
        lock = self._local_lock(key)
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                if self.backend == "redis":
                    name = f"worktime:aggregate:{user_id}:{attendance_date.isoformat()}"
                    redis_lock = await self._redis_client().lock(name, timeout=self.timeout, blocking_timeout=self.timeout)
                    async with redis_lock:
                        yield
                else:
                    yield
        finally:
            self._waiters[key] -= 1
            # Drop idle entries so the registry does not grow with every day of every user
            if self._waiters[key] == 0:
                self._waiters.pop(key, None)
                self._locks.pop(key, None)


aggregation_locks = AggregationLockRegistry(
    backend=settings.AGGREGATION_LOCK_BACKEND,
    timeout=settings.AGGREGATION_LOCK_TIMEOUT_SECONDS,
)
