"""
Celery application configuration.

Defines the Celery app instance and beat schedule for periodic tasks.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

# Create Celery app
celery_app = Celery(
    "channellink",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "worker.tasks.maintenance",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Reject task if worker dies
    worker_prefetch_multiplier=1,  # One task at a time per worker

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    task_routes={
        "worker.tasks.maintenance.*": {"queue": "maintenance"},
    },
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Billing period rollover - daily at 00:05 UTC
    "reset-elapsed-usage-periods": {
        "task": "worker.tasks.maintenance.reset_elapsed_usage_periods",
        "schedule": crontab(minute=5, hour=0),
        "options": {"queue": "maintenance"},
    },

    # Expired nonces - every hour
    "cleanup-expired-verifications": {
        "task": "worker.tasks.maintenance.cleanup_expired_verifications",
        "schedule": crontab(minute=20),
        "options": {"queue": "maintenance"},
    },
}
