"""
Automation webhook notifier.

Best-effort notification to the downstream automation engine after a
channel has been linked. Nothing is retried and nothing is raised.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

# Shared pool so dispatch() never blocks the request that triggered it
_executor = ThreadPoolExecutor(
    max_workers=settings.automation_webhook_workers,
    thread_name_prefix="automation-webhook",
)


class WebhookNotifier:
    """Posts ``{"channel", "chatId"}`` to the configured automation endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url if url is not None else settings.automation_webhook_url
        self.timeout = timeout or settings.automation_webhook_timeout
        self.transport = transport

    def notify(self, channel_id: str, chat_id: Optional[str]) -> bool:
        """
        Send the notification synchronously.

        Returns:
            True if the endpoint answered with a 2xx status
        """
        if not self.url:
            logger.debug("Automation webhook URL not configured, skipping notification")
            return False

        payload = {"channel": channel_id, "chatId": chat_id}

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Automation webhook error for channel {channel_id}: {e}")
            return False

        if response.is_success:
            logger.info(f"Automation webhook delivered: status={response.status_code} payload={payload}")
            return True

        logger.warning(
            f"Automation webhook failed: status={response.status_code} "
            f"reason={response.reason_phrase} payload={payload}"
        )
        return False

    def dispatch(self, channel_id: str, chat_id: Optional[str]) -> Optional[Future]:
        """Fire and forget. Returns the future for callers that want to observe it."""
        try:
            return _executor.submit(self.notify, channel_id, chat_id)
        except RuntimeError as e:
            # Executor already shut down (interpreter exit)
            logger.warning(f"Could not dispatch automation webhook: {e}")
            return None
