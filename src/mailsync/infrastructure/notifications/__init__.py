"""Sync completion publishers."""

from mailsync.infrastructure.notifications.publisher import LoggingEventPublisher, WebhookEventPublisher

__all__ = [
    "LoggingEventPublisher",
    "WebhookEventPublisher",
]
