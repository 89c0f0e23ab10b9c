"""
Quota Resolver

Joins an account's active billing subscription to its tier limits and
current usage. Read-only and fail-open: a broken read returns empty
limits and zero usage instead of raising, so it never blocks traffic.
Whether to reject a request is the caller's decision.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import ACTIVE_SUBSCRIPTION_STATUSES, USAGE_WARNING_LEVELS
from app.models import Account, Price, Subscription, SubscriptionItem, TierFeatures, UsageRecord, UserChannel

logger = logging.getLogger(__name__)


@dataclass
class QuotaSnapshot:
    tokens_used: int = 0
    requests_used: int = 0
    tokens_limit: Optional[int] = None
    requests_limit: Optional[int] = None
    history_limit: Optional[int] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AggregateUsage:
    total_tokens: int = 0
    total_requests: int = 0
    last_activity: Optional[datetime] = None


@dataclass
class UsageWarning:
    type: str  # tokens, requests
    level: str  # warning, critical
    percent: float
    message: str


class QuotaResolver:
    """Resolves tier limits and usage for an account."""

    def __init__(self, db: Session):
        self.db = db

    def active_subscription(self, account_id: UUID) -> Optional[Subscription]:
        """
        Most recently created active or trialing subscription of the
        account's billing customer.
        """
        customer_id = self.db.query(Account.stripe_customer_id).filter(
            Account.id == account_id,
        ).scalar()

        if not customer_id:
            return None

        return self.db.query(Subscription).filter(
            Subscription.customer_id == customer_id,
            Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
        ).order_by(Subscription.created.desc()).first()

    def tier_features(self, subscription: Subscription) -> Optional[TierFeatures]:
        """Follow subscription items -> price -> product to the first tier with features."""
        return self.db.query(TierFeatures).join(
            Price, Price.product_id == TierFeatures.id,
        ).join(
            SubscriptionItem, SubscriptionItem.price_id == Price.id,
        ).filter(
            SubscriptionItem.subscription_id == subscription.id,
        ).order_by(SubscriptionItem.created).first()

    def _usage_query(self, account_id: UUID):
        return self.db.query(
            func.coalesce(func.sum(UsageRecord.tokens_used), 0),
            func.coalesce(func.sum(UsageRecord.requests_used), 0),
        ).join(
            UserChannel, UserChannel.id == UsageRecord.user_channel_id,
        ).filter(
            UserChannel.account_id == account_id,
        )

    def get_limits_and_usage(self, account_id: UUID) -> QuotaSnapshot:
        """
        Limits of the account's current tier paired with usage across all
        of its linked channels.

        With an active period, records last touched before the period
        started have not been reset yet and count as zero.
        """
        snapshot = QuotaSnapshot()

        try:
            subscription = self.active_subscription(account_id)

            usage_query = self._usage_query(account_id)
            if subscription:
                snapshot.period_start = subscription.current_period_start
                snapshot.period_end = subscription.current_period_end
                if subscription.current_period_start:
                    usage_query = usage_query.filter(
                        UsageRecord.updated_at >= subscription.current_period_start,
                    )

                features = self.tier_features(subscription)
                if features:
                    snapshot.tokens_limit = features.tokens_limit
                    snapshot.requests_limit = features.requests_limit
                    snapshot.history_limit = features.history_limit
                else:
                    logger.warning(f"No tier features for subscription {subscription.id}")

            tokens, requests = usage_query.one()
            snapshot.tokens_used = int(tokens)
            snapshot.requests_used = int(requests)

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error resolving limits for account {account_id}: {e}")
            return QuotaSnapshot()

        return snapshot

    def get_aggregate_usage(self, account_id: UUID) -> AggregateUsage:
        """Totals across all of an account's channels, regardless of tier. For reporting."""
        try:
            tokens, requests, last_activity = self.db.query(
                func.coalesce(func.sum(UsageRecord.tokens_used), 0),
                func.coalesce(func.sum(UsageRecord.requests_used), 0),
                func.max(UsageRecord.updated_at),
            ).join(
                UserChannel, UserChannel.id == UsageRecord.user_channel_id,
            ).filter(
                UserChannel.account_id == account_id,
            ).one()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error reading aggregate usage for account {account_id}: {e}")
            return AggregateUsage()

        return AggregateUsage(
            total_tokens=int(tokens),
            total_requests=int(requests),
            last_activity=last_activity,
        )

    def usage_warnings(self, account_id: UUID) -> List[UsageWarning]:
        """Warnings for counters approaching their tier limit."""
        snapshot = self.get_limits_and_usage(account_id)

        warnings = []
        for kind, used, limit in (
            ("tokens", snapshot.tokens_used, snapshot.tokens_limit),
            ("requests", snapshot.requests_used, snapshot.requests_limit),
        ):
            if not limit or limit < 0:
                continue

            percent = used / limit * 100
            for threshold, level in USAGE_WARNING_LEVELS:
                if percent >= threshold:
                    warnings.append(UsageWarning(
                        type=kind,
                        level=level,
                        percent=round(percent, 1),
                        message=f"You've used {percent:.1f}% of your {kind[:-1]} limit",
                    ))
                    break

        return warnings
