"""Downstream notification of completed syncs.

Delivery is best effort: failures are logged and never reach the sync run.
"""

from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger

from mailsync.domain.models import SyncCompletedEvent


class LoggingEventPublisher:
    """Writes events to the log; used when no webhook is configured."""

    def publish(self, event: SyncCompletedEvent) -> None:
        logger.info(f"[{event.account_id}] {event.event_type}: {event.message} ({event.email_address})")


class WebhookEventPublisher:
    """POSTs the event JSON to a notification webhook."""

    def __init__(self, url: str, http: Optional[httpx.Client] = None, timeout: float = 10.0) -> None:
        self.url = url
        self._http = http or httpx.Client(timeout=timeout)

    def publish(self, event: SyncCompletedEvent) -> None:
        payload = event.model_dump(mode="json")
        payload["message"] = event.message
        try:
            response = self._http.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[{event.account_id}] notification webhook failed: {e}")
            return
        logger.debug(f"[{event.account_id}] notification delivered to {self.url}")
