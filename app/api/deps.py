"""
API Dependencies

Common dependencies for authentication, database sessions, and rate limiting.
Accounts present Supabase JWTs; the bot integration and other back-office
callers present the shared service key.
"""

from typing import Optional
from uuid import UUID
import logging

import redis
from fastapi import Depends, HTTPException, status, Request, Security
from fastapi.security import APIKeyHeader, HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import Account
from app.services.service_role import ServiceRole
from app.services.webhook_notifier import WebhookNotifier
from app.utils.security import decode_supabase_token, verify_service_key
from app.utils.redis_client import LinkAttemptLimiter, link_attempt_limiter
from app.config import settings

logger = logging.getLogger(__name__)

# Security schemes
security = HTTPBearer(auto_error=False)
service_key_header = APIKeyHeader(name="X-Service-Key", auto_error=False)


async def require_service_key(
    service_key: Optional[str] = Security(service_key_header),
) -> str:
    """
    Reject callers without the shared service key.

    Returns:
        Caller label used in logs
    """
    if not verify_service_key(service_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service key",
        )
    return "service"


async def get_service_role(
    caller: str = Depends(require_service_key),
    db: Session = Depends(get_db),
) -> ServiceRole:
    """Privileged database access for an authenticated service caller."""
    return ServiceRole(db, caller=caller)


def get_notifier() -> WebhookNotifier:
    return WebhookNotifier()


async def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Account:
    """
    Get current authenticated account from a Supabase JWT.

    Accounts are created on first sight, the same id as the auth user.

    Raises:
        HTTPException: If authentication fails
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_supabase_token(credentials.credentials)

    try:
        account_id = UUID(payload["sub"]) if payload and payload.get("sub") else None
    except ValueError:
        account_id = None

    if not account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    account = db.query(Account).filter(Account.id == account_id).first()

    email = payload.get("email")
    if not account and email:
        account = Account(id=account_id, email=email)
        db.add(account)
        db.commit()
        db.refresh(account)
        logger.info(f"Created new account from Supabase: {email}")

    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return account


def link_identity(body) -> Optional[tuple[str, str]]:
    """
    (channel, identity) a nonce request is counted against.

    The external handle when one is given, else the prebound account.
    """
    if not isinstance(body, dict):
        return None

    channel_id = body.get("channelId") or body.get("channel_id")
    identity = (
        body.get("externalHandle") or body.get("external_handle")
        or body.get("accountId") or body.get("account_id")
    )
    if not isinstance(channel_id, str) or not isinstance(identity, str) or not identity.strip():
        return None
    return channel_id, identity.strip()


class LinkGenerateRateLimit:
    """
    Rate limit for nonce requests, keyed by the external identity asking to link.

    Requests that name neither a handle nor an account are not limited.
    Lets requests through when Redis is unavailable.
    """

    def __init__(self, limiter: LinkAttemptLimiter = link_attempt_limiter):
        self.limiter = limiter

    async def __call__(self, request: Request):
        try:
            body = await request.json()
        except ValueError:
            return

        key = link_identity(body)
        if not key:
            return
        channel_id, identity = key

        try:
            info = self.limiter.hit(channel_id, identity)
        except redis.RedisError as e:
            logger.warning(f"Rate limiter unavailable for link generation: {e}")
            return

        if not info.allowed:
            logger.info(f"Too many nonce requests on {channel_id} for one identity ({info.current})")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": "Rate limit exceeded",
                    "limit": info.limit,
                    "reset_in": info.reset_in,
                },
                headers=info.headers(),
            )

        # Add rate limit headers to response
        request.state.rate_limit_info = info


rate_limit_link_generate = LinkGenerateRateLimit()
