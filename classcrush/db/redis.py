from upstash_redis import Redis
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple
import structlog

from classcrush.config import settings


logger = structlog.get_logger(__name__)

# Global Redis client
redis_client: Optional[Redis] = None


async def init_redis() -> Optional[Redis]:
    """Initialize Upstash Redis connection."""
    global redis_client
    if not settings.UPSTASH_REDIS_URL or not settings.UPSTASH_REDIS_TOKEN:
        logger.warning("redis_not_configured")
        return None
    redis_client = Redis(
        url=settings.UPSTASH_REDIS_URL,
        token=settings.UPSTASH_REDIS_TOKEN,
    )
    logger.info("redis_initialized")
    return redis_client


async def close_redis():
    """Close Redis connection."""
    global redis_client
    redis_client = None
    logger.info("redis_closed")


def get_redis() -> Redis:
    """Get Redis client instance."""
    if redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


def utc_day() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class SwipeLimiter:
    """
    Daily swipe allowance per user, persisted in Redis.

    The counter is keyed by (user, UTC calendar day), so it survives process
    restarts and rolls over at midnight UTC without a reset job.
    """

    # Two days, so a counter outlives its whole calendar day in every timezone.
    KEY_TTL_SECONDS = 2 * 86400

    def __init__(
        self,
        client: Optional[Redis] = None,
        daily_limit: Optional[int] = None,
        today: Callable[[], str] = utc_day,
    ):
        self.client = client if client is not None else get_redis()
        self.daily_limit = settings.SWIPE_LIMIT_PER_DAY if daily_limit is None else daily_limit
        self._today = today

    def _key(self, user_id: str) -> str:
        return f"ratelimit:swipe:{user_id}:{self._today()}"

    async def swipes_today(self, user_id: str) -> int:
        count = self.client.get(self._key(user_id))
        return int(count) if count is not None else 0

    async def remaining(self, user_id: str) -> int:
        """Swipes left today, without consuming one."""
        return max(0, self.daily_limit - await self.swipes_today(user_id))

    async def has_reached_limit(self, user_id: str) -> bool:
        return await self.remaining(user_id) <= 0

    async def consume(self, user_id: str) -> Tuple[bool, int]:
        """
        Count one swipe.
        Returns (is_allowed, remaining_swipes).
        """
        key = self._key(user_id)
        count = self.client.get(key)

        if count is None:
            # First swipe of the day
            self.client.setex(key, self.KEY_TTL_SECONDS, "1")
            return True, self.daily_limit - 1

        current_count = int(count)
        if current_count >= self.daily_limit:
            logger.info("swipe_limit_reached", user_id=user_id, limit=self.daily_limit)
            return False, 0

        self.client.incr(key)
        return True, self.daily_limit - current_count - 1
