"""
Billing Mirror Models

Read-only copies of billing provider (Stripe) objects plus the tier
feature table keyed by product id. Rows are written only by the
webhook mirror in ``StripeService``.
"""

from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship

from app.config import ACTIVE_SUBSCRIPTION_STATUSES
from app.database import Base
from app.utils.db_types import JSONDict


class Product(Base):
    """Stripe product (one per tier)."""

    __tablename__ = "stripe_products"

    id = Column(String(255), primary_key=True)  # prod_...
    name = Column(String(255), nullable=True)
    active = Column(Boolean, default=True)
    product_metadata = Column("metadata", JSONDict(), nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    features = relationship("TierFeatures", uselist=False, back_populates="product")

    def __repr__(self):
        return f"<Product {self.id} {self.name}>"


class Price(Base):
    """Stripe price attached to a product."""

    __tablename__ = "stripe_prices"

    id = Column(String(255), primary_key=True)  # price_...
    product_id = Column(String(255), ForeignKey("stripe_products.id"), nullable=True, index=True)
    active = Column(Boolean, default=True)
    unit_amount = Column(Integer, nullable=True)  # in cents
    currency = Column(String(10), nullable=True)
    recurring_interval = Column(String(20), nullable=True)  # month, year

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product")

    def __repr__(self):
        return f"<Price {self.id} -> {self.product_id}>"


class Subscription(Base):
    """Stripe subscription mirror."""

    __tablename__ = "stripe_subscriptions"

    id = Column(String(255), primary_key=True)  # sub_...
    customer_id = Column(String(255), nullable=False, index=True)

    status = Column(String(50), nullable=False)
    # Status: active, canceled, past_due, trialing, incomplete, incomplete_expired, unpaid, paused

    # Billing period
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False)

    # Creation time at the provider; used as the tie-break between subscriptions
    created = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "SubscriptionItem",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="SubscriptionItem.created",
    )

    def __repr__(self):
        return f"<Subscription {self.id} - {self.status}>"

    @property
    def is_active(self) -> bool:
        """Check if subscription counts for quota purposes."""
        return self.status in ACTIVE_SUBSCRIPTION_STATUSES


class SubscriptionItem(Base):
    """Line item linking a subscription to a price."""

    __tablename__ = "stripe_subscription_items"

    id = Column(String(255), primary_key=True)  # si_...
    subscription_id = Column(
        String(255),
        ForeignKey("stripe_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price_id = Column(String(255), ForeignKey("stripe_prices.id"), nullable=True)
    created = Column(DateTime, nullable=True)

    subscription = relationship("Subscription", back_populates="items")
    price = relationship("Price")


class TierFeatures(Base):
    """Limits for a tier, keyed by Stripe product id. Negative history_limit means unlimited."""

    __tablename__ = "tier_features"

    id = Column(String(255), ForeignKey("stripe_products.id", onupdate="CASCADE"), primary_key=True)
    tokens_limit = Column(Integer, nullable=True)
    requests_limit = Column(Integer, nullable=True)
    history_limit = Column(Integer, nullable=True)

    product = relationship("Product", back_populates="features")

    def __repr__(self):
        return f"<TierFeatures {self.id} tokens={self.tokens_limit} requests={self.requests_limit}>"
