"""
Nonce Registry

Issues, validates and garbage-collects the short-lived verification
nonces that scope a pending channel link.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.models import Channel, ChannelVerification
from app.services.errors import ChannelNotFoundError, InvalidHandleError

logger = logging.getLogger(__name__)

# Handle formats per channel link method
HANDLE_PATTERNS = {
    "phone_number": re.compile(r"^\+?\d{10,15}$"),
    "username": re.compile(r"^(@\w{1,64}|\d+)$"),
}


def mask_nonce(nonce: Optional[str]) -> str:
    """Shorten a nonce for log output."""
    if not nonce:
        return "<empty>"
    return f"{nonce[:8]}..."


@dataclass
class IssuedNonce:
    nonce: str
    expires_at: datetime
    reused: bool = False


@dataclass
class NonceValidation:
    is_valid: bool
    is_expired: bool
    is_registration: bool


class NonceRegistry:
    """Service for channel verification nonces."""

    def __init__(self, db: Session, ttl_hours: Optional[int] = None):
        self.db = db
        self.ttl = timedelta(hours=ttl_hours or settings.nonce_ttl_hours)

    def get_active_channel(self, channel_id: str) -> Channel:
        channel = self.db.query(Channel).filter(
            Channel.id == channel_id,
            Channel.is_active.is_(True),
        ).first()

        if not channel:
            raise ChannelNotFoundError(f"Unknown or inactive channel: {channel_id}")
        return channel

    @staticmethod
    def check_handle(channel: Channel, handle: str) -> None:
        """Raise InvalidHandleError if handle does not fit the channel's link method."""
        pattern = HANDLE_PATTERNS.get(channel.link_method)
        if not handle.strip():
            raise InvalidHandleError(f"Empty handle for {channel.id}")
        if pattern and not pattern.match(handle):
            raise InvalidHandleError(f"Invalid handle format for {channel.id}")

    def create(
        self,
        channel_id: str,
        prebound_account_id: Optional[UUID] = None,
        external_handle: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> IssuedNonce:
        """
        Issue a verification nonce for a channel.

        Repeated registration attempts for the same handle get the existing
        unexpired nonce back instead of a new one.

        Args:
            channel_id: Channel the link is for
            prebound_account_id: Account the nonce is reserved for, if known
            external_handle: Phone number / username / id reported by the bot
            metadata: Free-form message info from the bot

        Returns:
            IssuedNonce with the nonce and its expiry
        """
        channel = self.get_active_channel(channel_id)
        if external_handle is not None:
            self.check_handle(channel, external_handle)

        now = datetime.utcnow()

        if external_handle is not None:
            query = self.db.query(ChannelVerification).filter(
                ChannelVerification.channel_id == channel_id,
                ChannelVerification.user_handle == external_handle,
                ChannelVerification.expires_at > now,
            )
            if prebound_account_id is None:
                query = query.filter(ChannelVerification.account_id.is_(None))
            else:
                query = query.filter(ChannelVerification.account_id == prebound_account_id)

            existing = query.order_by(ChannelVerification.created_at.desc()).first()
            if existing:
                logger.info(
                    f"Reusing pending nonce {mask_nonce(existing.nonce)} for channel {channel_id}"
                )
                return IssuedNonce(nonce=existing.nonce, expires_at=existing.expires_at, reused=True)

        verification = ChannelVerification(
            nonce=str(uuid.uuid4()),
            channel_id=channel_id,
            account_id=prebound_account_id,
            user_handle=external_handle,
            chat_metadata=metadata or {},
            expires_at=now + self.ttl,
            created_at=now,
        )
        self.db.add(verification)
        self.db.commit()

        logger.info(
            f"Issued nonce {mask_nonce(verification.nonce)} for channel {channel_id} "
            f"(registration={prebound_account_id is None}, expires_at={verification.expires_at.isoformat()})"
        )
        return IssuedNonce(nonce=verification.nonce, expires_at=verification.expires_at)

    def lookup(self, nonce: str, channel_id: str) -> Optional[ChannelVerification]:
        return self.db.query(ChannelVerification).filter(
            ChannelVerification.nonce == nonce,
            ChannelVerification.channel_id == channel_id,
        ).first()

    def validate(self, nonce: str, channel_id: str) -> NonceValidation:
        """
        Check a nonce without consuming it.

        "Never existed" and "expired" are reported separately for the UI;
        both are rejected the same way by LinkFinalizer.
        """
        if not nonce or not channel_id:
            return NonceValidation(is_valid=False, is_expired=False, is_registration=False)

        verification = self.lookup(nonce, channel_id)
        if not verification:
            logger.info(f"Nonce {mask_nonce(nonce)} not found for channel {channel_id}")
            return NonceValidation(is_valid=False, is_expired=False, is_registration=False)

        is_expired = verification.is_expired()
        result = NonceValidation(
            is_valid=not is_expired,
            is_expired=is_expired,
            is_registration=verification.is_registration,
        )
        logger.info(f"Validated nonce {mask_nonce(nonce)} for channel {channel_id}: {result}")
        return result

    def cleanup_expired(self, older_than_hours: int = 24) -> int:
        """
        Delete verifications that expired more than ``older_than_hours`` ago.

        Returns:
            Number of deleted rows
        """
        cutoff = datetime.utcnow() - timedelta(hours=older_than_hours)

        deleted = self.db.query(ChannelVerification).filter(
            ChannelVerification.expires_at < cutoff,
        ).delete(synchronize_session=False)
        self.db.commit()

        logger.info(f"Deleted {deleted} channel verifications expired before {cutoff.isoformat()}")
        return deleted
