"""
ChannelLink Database Models

All SQLAlchemy models are imported here for easy access.
"""

from app.models.account import Account
from app.models.channel import Channel, ChannelVerification, UserChannel, LINK_METHODS
from app.models.usage_record import UsageRecord
from app.models.billing import Product, Price, Subscription, SubscriptionItem, TierFeatures

__all__ = [
    "Account",
    "Channel",
    "ChannelVerification",
    "UserChannel",
    "LINK_METHODS",
    "UsageRecord",
    "Product",
    "Price",
    "Subscription",
    "SubscriptionItem",
    "TierFeatures",
]
