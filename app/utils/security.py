"""
Security utilities for authentication.

Accounts authenticate through Supabase; we only verify its HS256 access
tokens. Back-office callers present a shared service key.
"""

import logging
import secrets
from typing import Any, Optional

from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

# Supabase signs access tokens with HS256 and audience "authenticated"
ALGORITHM = "HS256"
AUDIENCE = "authenticated"


def decode_supabase_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a Supabase JWT token.

    Supabase JWTs contain:
    - sub: User UUID (same as accounts.id)
    - email: User email
    - aud: "authenticated"

    Returns:
        Decoded token payload or None if invalid
    """
    if not settings.supabase_jwt_secret:
        logger.warning("Supabase JWT secret not configured")
        return None

    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"Supabase token decode failed: {e}")
        return None


def verify_service_key(presented: Optional[str]) -> bool:
    """Constant-time comparison against the configured service key."""
    if not presented or not settings.service_api_key:
        return False
    return secrets.compare_digest(presented.encode(), settings.service_api_key.encode())
