"""Unit tests for sync event publishers and service wiring."""

import json

import httpx

from mailsync.domain.models import SyncCompletedEvent
from mailsync.infrastructure.factory import build_services
from mailsync.infrastructure.notifications import LoggingEventPublisher, WebhookEventPublisher
from mailsync.infrastructure.settings import Settings

from tests.conftest import ACCOUNT_EMAIL, NOW


def _event() -> SyncCompletedEvent:
    return SyncCompletedEvent(
        account_id="acct-1", email_address=ACCOUNT_EMAIL, processed=3, stored=2, updated=1, completed_at=NOW
    )


class TestWebhookEventPublisher:
    """Tests for webhook delivery."""

    def test_posts_event_json(self):
        """Test the event and its message are posted as JSON."""
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        with httpx.Client(transport=httpx.MockTransport(handler)) as http:
            WebhookEventPublisher("https://crm.example/hooks/mail", http=http).publish(_event())

        assert received[0]["event_type"] == "email_sync.completed"
        assert received[0]["stored"] == 2
        assert received[0]["message"] == "Synced 2 new emails"

    def test_failure_swallowed(self):
        """Test a failing webhook never raises into the sync run."""
        with httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500))) as http:
            WebhookEventPublisher("https://crm.example/hooks/mail", http=http).publish(_event())

    def test_logging_publisher(self):
        """Test the fallback publisher accepts events."""
        LoggingEventPublisher().publish(_event())


class TestBuildServices:
    """Tests for settings-driven wiring."""

    def test_sqlite_services(self, tmp_path):
        """Test default settings wire a SQLite store and a logging publisher."""
        settings = Settings(sqlite_db_path=str(tmp_path / "svc.db"), sync_max_workers=2)
        services = build_services(settings)
        try:
            assert services.store.db_path == tmp_path / "svc.db"
            assert services.runner.max_workers == 2
            sync = services.runner.mailbox_sync()
            assert isinstance(sync.publisher, LoggingEventPublisher)
            assert sync.cfg.max_body_chars == 50_000
        finally:
            services.close()

    def test_webhook_publisher_selected(self, tmp_path):
        """Test a notification URL switches to the webhook publisher."""
        settings = Settings(
            sqlite_db_path=str(tmp_path / "svc.db"), notification_webhook_url="https://crm.example/hooks/mail"
        )
        services = build_services(settings)
        try:
            assert isinstance(services.runner.mailbox_sync().publisher, WebhookEventPublisher)
        finally:
            services.close()
