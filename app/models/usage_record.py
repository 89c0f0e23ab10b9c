"""
Usage Record Model

Running token/request counters, one row per linked channel.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.db_types import GUID


class UsageRecord(Base):
    """Usage counters for a single UserChannel, zeroed at each period rollover."""

    __tablename__ = "usage_records"

    # 1:1 with user_channels
    user_channel_id = Column(
        GUID(),
        ForeignKey("user_channels.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Usage counters
    tokens_used = Column(Integer, nullable=False, default=0)
    requests_used = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user_channel = relationship("UserChannel", back_populates="usage")

    def __repr__(self):
        return f"<UsageRecord {self.user_channel_id} tokens={self.tokens_used} requests={self.requests_used}>"
