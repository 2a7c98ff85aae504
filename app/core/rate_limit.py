from collections import defaultdict
from time import time
from typing import Dict, List

import redis

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Fixed-window counter in Redis, sliding window in memory when Redis is unreachable."""

    def __init__(self, redis_url: str | None = None) -> None:
        self.redis_url = redis_url
        self._memory_store: Dict[str, List[float]] = defaultdict(list)
        self._redis = None
        self._connected = False

    def _client(self):
        if self._connected:
            return self._redis
        self._connected = True
        url = self.redis_url or get_settings().redis_url
        try:
            client = redis.from_url(url, decode_responses=True, socket_connect_timeout=1)
            client.ping()
            self._redis = client
        except redis.RedisError:
            logger.warning("Redis unavailable for rate limiting, using in-memory window")
            self._redis = None
        return self._redis

    def _evict_idle(self, now: float, window_seconds: int) -> None:
        idle = [
            key
            for key, stamps in self._memory_store.items()
            if not stamps or now - stamps[-1] > window_seconds
        ]
        for key in idle:
            del self._memory_store[key]

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        client = self._client()
        if client:
            current = client.incr(key)
            if current == 1:
                client.expire(key, window_seconds)
            return current <= limit

        now = time()
        self._evict_idle(now, window_seconds)
        bucket = [ts for ts in self._memory_store[key] if now - ts <= window_seconds]
        bucket.append(now)
        self._memory_store[key] = bucket
        return len(bucket) <= limit

    def reset(self) -> None:
        self._memory_store.clear()


rate_limiter = RateLimiter()
