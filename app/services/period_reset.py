"""
Billing period reset.

Zeroes the usage counters of every link whose account has an active
subscription with an elapsed billing period. Runs daily from Celery beat.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import ACTIVE_SUBSCRIPTION_STATUSES
from app.models import Account, Subscription, UsageRecord, UserChannel

logger = logging.getLogger(__name__)


class PeriodResetScheduler:

    def __init__(self, db: Session):
        self.db = db

    def reset_elapsed_periods(self, now: Optional[datetime] = None) -> int:
        """
        Reset counters for accounts whose current period has ended.

        Returns:
            Number of usage records zeroed
        """
        now = now or datetime.utcnow()

        elapsed_links = select(UserChannel.id).join(
            Account, Account.id == UserChannel.account_id,
        ).join(
            Subscription, Subscription.customer_id == Account.stripe_customer_id,
        ).where(
            Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
            Subscription.current_period_end < now,
        )

        count = self.db.query(UsageRecord).filter(
            UsageRecord.user_channel_id.in_(elapsed_links),
        ).update(
            {"tokens_used": 0, "requests_used": 0, "updated_at": now},
            synchronize_session=False,
        )
        self.db.commit()

        logger.info(f"Reset usage for {count} channel links with elapsed billing periods")
        return count
