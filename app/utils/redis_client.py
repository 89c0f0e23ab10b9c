"""
Redis client utilities.

Link generation attempts are counted per external identity, never per
calling client.
"""

from dataclasses import dataclass
from typing import Optional

import redis

from app.config import settings


# Global Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_connect_timeout=5,
    socket_timeout=5,
)


@dataclass
class RateLimitInfo:
    limit: int
    current: int
    reset_in: int

    @property
    def allowed(self) -> bool:
        return self.current <= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current)

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_in),
        }


class LinkAttemptLimiter:
    """
    Fixed-window counter of nonce requests per (channel, identity).

    The key and its expiry are created in one MULTI; counters always
    carry a TTL.
    """

    def __init__(
        self,
        limit: int,
        window: int = 3600,
        key_prefix: str = "link_attempts",
        client: Optional[redis.Redis] = None,
    ):
        self.limit = limit
        self.window = window
        self.key_prefix = key_prefix
        self.client = client or redis_client

    def key(self, channel_id: str, identity: str) -> str:
        return f"{self.key_prefix}:{channel_id}:{identity}"

    def hit(self, channel_id: str, identity: str) -> RateLimitInfo:
        """
        Count one attempt for ``identity`` on ``channel_id``.

        Raises:
            redis.RedisError: If Redis is unreachable
        """
        key = self.key(channel_id, identity)

        pipe = self.client.pipeline()
        pipe.set(key, 0, ex=self.window, nx=True)
        pipe.incr(key)
        pipe.ttl(key)
        _, current, ttl = pipe.execute()

        return RateLimitInfo(limit=self.limit, current=current, reset_in=max(ttl, 0))


link_attempt_limiter = LinkAttemptLimiter(limit=settings.link_generate_per_hour)
