"""Wire settings into stores, provider clients and use cases."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import httpx
from loguru import logger

from mailsync.application.content.normalizer import ContentNormalizer
from mailsync.application.ports.event_publisher import SyncEventPublisher
from mailsync.application.use_cases.sync_accounts import SyncAccountsUseCase
from mailsync.application.use_cases.sync_mailbox import SyncConfig, SyncMailboxUseCase
from mailsync.infrastructure.email.providers.gmail.auth import GmailTokenSupervisor, TokenEndpointConfig
from mailsync.infrastructure.email.providers.gmail.client import GmailMessageSource, GmailSourceConfig
from mailsync.infrastructure.notifications.publisher import LoggingEventPublisher, WebhookEventPublisher
from mailsync.infrastructure.postgres_client import PostgresMailStore
from mailsync.infrastructure.settings import Settings, get_settings
from mailsync.infrastructure.sqlite.client import SQLiteMailStore

MailStore = Union[SQLiteMailStore, PostgresMailStore]


def token_config(settings: Settings) -> TokenEndpointConfig:
    return TokenEndpointConfig(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret.get_secret_value(),
        token_url=settings.google_token_url,
        refresh_window_seconds=settings.token_refresh_window_seconds,
        timeout_seconds=settings.gmail_http_timeout_seconds,
    )


def source_config(settings: Settings) -> GmailSourceConfig:
    return GmailSourceConfig(
        base_url=settings.gmail_api_base_url,
        page_size=settings.sync_page_size,
        fetch_batch_size=settings.sync_fetch_batch_size,
        history_enabled=settings.sync_history_enabled,
        max_retries=settings.provider_max_retries,
        backoff_base_seconds=settings.provider_backoff_base_seconds,
        backoff_max_seconds=settings.provider_backoff_max_seconds,
        timeout_seconds=settings.gmail_http_timeout_seconds,
    )


def sync_config(settings: Settings) -> SyncConfig:
    return SyncConfig(
        max_messages_per_run=settings.sync_max_messages_per_run,
        fetch_batch_size=settings.sync_fetch_batch_size,
        run_timeout_seconds=settings.sync_run_timeout_seconds,
        max_body_chars=settings.max_body_chars,
    )


def build_store(settings: Settings) -> MailStore:
    if settings.storage_backend == "postgres":
        store = PostgresMailStore(settings)
        store.setup_schema()
        return store
    return SQLiteMailStore(settings.sqlite_db_path)


def build_publisher(settings: Settings, http: httpx.Client) -> SyncEventPublisher:
    if settings.notification_webhook_url:
        return WebhookEventPublisher(settings.notification_webhook_url, http=http)
    return LoggingEventPublisher()


@dataclass
class MailsyncServices:
    settings: Settings
    store: MailStore
    runner: SyncAccountsUseCase
    http: httpx.Client

    def close(self) -> None:
        self.http.close()


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[MailStore] = None,
    http: Optional[httpx.Client] = None,
) -> MailsyncServices:
    """Build the sync runner. Each account run gets its own token supervisor."""
    settings = settings or get_settings()
    store = store or build_store(settings)
    http = http or httpx.Client(timeout=settings.gmail_http_timeout_seconds)
    publisher = build_publisher(settings, http)
    normalizer = ContentNormalizer()
    tokens_cfg, source_cfg, run_cfg = token_config(settings), source_config(settings), sync_config(settings)

    def mailbox_sync() -> SyncMailboxUseCase:
        tokens = GmailTokenSupervisor(tokens_cfg, accounts=store, http=http)
        return SyncMailboxUseCase(
            source=GmailMessageSource(source_cfg, tokens, http=http),
            records=store,
            cursors=store,
            clients=store,
            tokens=tokens,
            normalizer=normalizer,
            publisher=publisher,
            cfg=run_cfg,
        )

    runner = SyncAccountsUseCase(accounts=store, mailbox_sync=mailbox_sync, max_workers=settings.sync_max_workers)
    logger.info(f"Mailsync services ready (storage={settings.storage_backend}, workers={settings.sync_max_workers})")
    return MailsyncServices(settings=settings, store=store, runner=runner, http=http)
