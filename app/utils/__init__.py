"""Utility modules for ChannelLink."""

from app.utils.db_types import GUID, JSONDict
from app.utils.security import decode_supabase_token, verify_service_key
from app.utils.redis_client import redis_client, LinkAttemptLimiter, RateLimitInfo, link_attempt_limiter

__all__ = [
    "GUID",
    "JSONDict",
    "decode_supabase_token",
    "verify_service_key",
    "redis_client",
    "LinkAttemptLimiter",
    "RateLimitInfo",
    "link_attempt_limiter",
]
