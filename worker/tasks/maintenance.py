"""
Maintenance tasks.

Billing period resets and expired nonce cleanup.
"""

import logging

from celery import shared_task

from app.config import settings
from app.database import SessionLocal
from app.services.nonce_registry import NonceRegistry
from app.services.period_reset import PeriodResetScheduler

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def reset_elapsed_usage_periods(self):
    """
    Zero usage counters for accounts whose billing period has ended.
    """
    logger.info("Resetting usage for elapsed billing periods")

    with SessionLocal() as db:
        reset = PeriodResetScheduler(db).reset_elapsed_periods()

    return {"reset": reset}


@shared_task(bind=True)
def cleanup_expired_verifications(self, older_than_hours: int = None):
    """
    Delete channel verifications that expired a while ago.

    Args:
        older_than_hours: Grace period after expiry before deletion
    """
    older_than_hours = older_than_hours or settings.nonce_cleanup_older_than_hours
    logger.info(f"Cleaning up verifications expired more than {older_than_hours} hours ago")

    with SessionLocal() as db:
        deleted = NonceRegistry(db).cleanup_expired(older_than_hours=older_than_hours)

    return {"deleted": deleted}
