"""Service layer for ChannelLink."""

from app.services.channel_links import ChannelLinks
from app.services.link_finalizer import LinkFinalizer, LinkResult
from app.services.nonce_registry import NonceRegistry
from app.services.period_reset import PeriodResetScheduler
from app.services.quota_resolver import QuotaResolver
from app.services.service_role import ServiceRole
from app.services.stripe_service import StripeService
from app.services.usage_ledger import UsageLedger
from app.services.webhook_notifier import WebhookNotifier

__all__ = [
    "ChannelLinks",
    "LinkFinalizer",
    "LinkResult",
    "NonceRegistry",
    "PeriodResetScheduler",
    "QuotaResolver",
    "ServiceRole",
    "StripeService",
    "UsageLedger",
    "WebhookNotifier",
]
