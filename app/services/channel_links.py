"""
Channel link queries.

Status lookups, listing and explicit unlinking of account <-> channel
links, plus polling of a pending nonce from the account's side.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.models import Channel, ChannelVerification, UserChannel
from app.services.errors import LinkNotFoundError
from app.services.nonce_registry import mask_nonce

logger = logging.getLogger(__name__)


@dataclass
class LinkStatus:
    is_linked: bool
    is_verified: bool
    user_channel_id: Optional[UUID] = None
    channel_id: Optional[str] = None
    link: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: UserChannel) -> "LinkStatus":
        return cls(
            is_linked=True,
            is_verified=row.is_verified,
            user_channel_id=row.id,
            channel_id=row.channel_id,
            link=row.link,
            verified_at=row.verified_at,
            created_at=row.created_at,
        )


@dataclass
class NonceStatus:
    status: str  # pending, expired, done
    link: Optional[str] = None


class ChannelLinks:
    """Read and unlink operations on UserChannel rows."""

    def __init__(self, db: Session):
        self.db = db

    def find(self, account_id: UUID, channel_id: str) -> Optional[UserChannel]:
        return self.db.query(UserChannel).filter(
            UserChannel.account_id == account_id,
            UserChannel.channel_id == channel_id,
        ).first()

    def get_link_status(self, account_id: UUID, channel_id: str) -> LinkStatus:
        row = self.find(account_id, channel_id)
        if not row:
            return LinkStatus(is_linked=False, is_verified=False)
        return LinkStatus.from_row(row)

    def list_links(self, account_id: UUID) -> List[LinkStatus]:
        rows = self.db.query(UserChannel).filter(
            UserChannel.account_id == account_id,
        ).order_by(UserChannel.created_at).all()
        return [LinkStatus.from_row(row) for row in rows]

    def list_active_channels(self) -> List[Channel]:
        return self.db.query(Channel).filter(
            Channel.is_active.is_(True),
        ).order_by(Channel.id).all()

    def unlink(self, user_channel_id: UUID, account_id: UUID) -> None:
        """
        Delete a link owned by ``account_id``. Its usage record goes with it.

        Raises:
            LinkNotFoundError: No such link
            PermissionError: Link belongs to another account
        """
        row = self.db.query(UserChannel).filter(UserChannel.id == user_channel_id).first()
        if not row:
            raise LinkNotFoundError(f"Channel link {user_channel_id} not found")

        if row.account_id != account_id:
            logger.warning(
                f"Account {account_id} tried to remove link {user_channel_id} owned by {row.account_id}"
            )
            raise PermissionError("Channel link belongs to another account")

        self.db.delete(row)
        self.db.commit()
        logger.info(f"Removed channel link {user_channel_id} ({row.channel_id}) for account {account_id}")

    def nonce_status(self, nonce: str, account_id: UUID) -> NonceStatus:
        """
        Report where a linking attempt started by ``account_id`` stands.

        The nonce is deleted on success, so a missing nonce plus a recently
        verified link means the attempt completed.
        """
        now = datetime.utcnow()

        verification = self.db.query(ChannelVerification).filter(
            ChannelVerification.nonce == nonce,
            ChannelVerification.account_id == account_id,
        ).first()

        if verification and verification.is_expired(now):
            self.db.delete(verification)
            self.db.commit()
            logger.info(f"Removed expired nonce {mask_nonce(nonce)} for account {account_id}")
            return NonceStatus(status="expired")

        window_start = now - timedelta(minutes=settings.link_status_window_minutes)
        query = self.db.query(UserChannel).filter(
            UserChannel.account_id == account_id,
            UserChannel.verified_at.isnot(None),
            UserChannel.verified_at >= window_start,
        )
        if verification:
            query = query.filter(UserChannel.channel_id == verification.channel_id)

        recent = query.order_by(UserChannel.verified_at.desc()).first()
        if recent:
            return NonceStatus(status="done", link=recent.link)

        return NonceStatus(status="pending")
