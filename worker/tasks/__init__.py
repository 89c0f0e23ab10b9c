"""Celery tasks package."""

from worker.tasks.maintenance import (
    reset_elapsed_usage_periods,
    cleanup_expired_verifications,
)

__all__ = [
    "reset_elapsed_usage_periods",
    "cleanup_expired_verifications",
]
