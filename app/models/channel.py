"""
Channel Models

Messaging surfaces, pending verifications (nonces) and verified
account <-> channel links.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.db_types import GUID, JSONDict


# How an external identity is expressed on a channel
LINK_METHODS = ("phone_number", "username", "id")


class Channel(Base):
    """Messaging surface (telegram, whatsapp, ...). Administrator-managed."""

    __tablename__ = "channels"

    id = Column(String(50), primary_key=True)
    is_active = Column(Boolean, nullable=False, default=True)
    link_method = Column(String(20), nullable=False)  # phone_number, username, id
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Channel {self.id} ({self.link_method})>"


class ChannelVerification(Base):
    """
    Pending channel link, identified by a single-use nonce.

    ``account_id`` is empty for registration flows started from the bot
    before the person has an account.
    """

    __tablename__ = "channel_verifications"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    nonce = Column(String(64), unique=True, nullable=False, index=True)

    channel_id = Column(String(50), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(GUID(), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=True)

    # External identity as reported by the bot
    user_handle = Column(String(255), nullable=True, index=True)
    chat_metadata = Column(JSONDict(), nullable=True)

    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ChannelVerification {self.nonce[:8]}... channel={self.channel_id}>"

    @property
    def is_registration(self) -> bool:
        """True when no account was bound at creation time."""
        return self.account_id is None

    def is_expired(self, now: datetime = None) -> bool:
        return self.expires_at <= (now or datetime.utcnow())


class UserChannel(Base):
    """Verified binding between an account and an external channel identity."""

    __tablename__ = "user_channels"
    __table_args__ = (
        UniqueConstraint("account_id", "channel_id", name="uq_user_channels_account_channel"),
        UniqueConstraint("link", "channel_id", name="uq_user_channels_link_channel"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)

    account_id = Column(GUID(), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    channel_id = Column(String(50), ForeignKey("channels.id"), nullable=False)

    # Phone number, username or opaque id depending on the channel's link method
    link = Column(String(255), nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    verified_at = Column(DateTime, nullable=True)

    # Relationships
    account = relationship("Account", back_populates="channels")
    usage = relationship("UsageRecord", back_populates="user_channel", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<UserChannel {self.account_id} - {self.channel_id}>"

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None
