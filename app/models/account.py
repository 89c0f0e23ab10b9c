"""
Account Model

Platform account that external channel identities get linked to.
Rows are provisioned by the managed auth service.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.db_types import GUID


class Account(Base):
    """Platform account."""

    __tablename__ = "accounts"

    # Primary key (same id as the auth provider's user)
    id = Column(GUID(), primary_key=True, default=uuid.uuid4)

    # Profile
    email = Column(String(255), unique=True, nullable=False, index=True)
    nickname = Column(String(100), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    # Billing provider customer (mirrored subscriptions are keyed by it)
    stripe_customer_id = Column(String(255), unique=True, nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    channels = relationship("UserChannel", back_populates="account", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Account {self.email}>"
