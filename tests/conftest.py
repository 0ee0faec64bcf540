"""
Shared pytest fixtures for mailsync tests.

Gmail and the Google token endpoint are simulated by ``FakeGmail`` behind an
``httpx.MockTransport``; storage is a real SQLite file under ``tmp_path``.
"""

import base64
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from mailsync.application.use_cases.sync_mailbox import SyncConfig, SyncMailboxUseCase
from mailsync.domain.entities.mail_account import MailAccount
from mailsync.infrastructure.email.providers.gmail.auth import GmailTokenSupervisor, TokenEndpointConfig
from mailsync.infrastructure.email.providers.gmail.client import GmailMessageSource, GmailSourceConfig
from mailsync.infrastructure.sqlite.client import SQLiteMailStore

NOW = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
ACCOUNT_EMAIL = "agent@travel.example"
CLIENT_EMAIL = "client1@example.com"


def b64url(data) -> str:
    raw = data.encode("utf-8") if isinstance(data, str) else data
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def epoch_ms(dt: datetime) -> str:
    return str(int(dt.timestamp() * 1000))


def gmail_message(
    message_id: str,
    *,
    sender: str = f"Client One <{CLIENT_EMAIL}>",
    to: str = ACCOUNT_EMAIL,
    cc: str = "",
    subject: str = "Trip to Lisbon",
    body: str = "Hello, please send the itinerary for our Lisbon trip.",
    html: str | None = None,
    labels: tuple = ("INBOX", "UNREAD"),
    received: datetime = NOW - timedelta(days=1),
    attachments: tuple = (),
) -> dict:
    """Gmail `format=full` JSON for one message."""
    headers = [
        {"name": "From", "value": sender},
        {"name": "To", "value": to},
        {"name": "Subject", "value": subject},
        {"name": "Date", "value": received.strftime("%a, %d %b %Y %H:%M:%S +0000")},
        {"name": "Message-ID", "value": f"<{message_id}@mail.example>"},
    ]
    if cc:
        headers.append({"name": "Cc", "value": cc})

    if html is None and not attachments:
        payload = {
            "mimeType": "text/plain",
            "filename": "",
            "headers": headers,
            "body": {"data": b64url(body), "size": len(body)},
        }
    else:
        alternative = [{"mimeType": "text/plain", "filename": "", "body": {"data": b64url(body), "size": len(body)}}]
        if html is not None:
            alternative.append({"mimeType": "text/html", "filename": "", "body": {"data": b64url(html), "size": len(html)}})
        parts = [{"mimeType": "multipart/alternative", "filename": "", "body": {"size": 0}, "parts": alternative}]
        for name, content_type, size in attachments:
            parts.append(
                {
                    "mimeType": content_type,
                    "filename": name,
                    "body": {"attachmentId": f"att-{name}", "size": size},
                }
            )
        payload = {"mimeType": "multipart/mixed", "filename": "", "headers": headers, "body": {"size": 0}, "parts": parts}

    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "labelIds": list(labels),
        "snippet": body[:50],
        "historyId": "900",
        "internalDate": epoch_ms(received),
        "payload": payload,
    }


class FakeGmail:
    """In-memory Gmail REST API plus Google token endpoint."""

    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(self) -> None:
        self.messages: dict[str, dict] = {}
        self.history_id = "5000"
        self.history_added: list[str] = []
        self.history_invalid = False
        self.valid_tokens = {"tok-good", "tok-refreshed"}
        self.token_status = 200
        self.rejected_refresh_tokens: set[str] = set()
        self.token_requests = 0
        self.failures: dict[str, list] = defaultdict(list)
        self.requests: list[httpx.Request] = []

    def add(self, *messages: dict) -> None:
        for message in messages:
            self.messages[message["id"]] = message

    def fail(self, key: str, *statuses) -> None:
        """Queue error responses for a path key like 'messages/m2' or 'profile'."""
        self.failures[key].extend(statuses)

    def api_requests(self, key: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/users/me/{key}")]

    @staticmethod
    def _error(status) -> httpx.Response:
        if status == "rate403":
            return httpx.Response(
                403, json={"error": {"code": 403, "errors": [{"reason": "rateLimitExceeded"}]}}
            )
        return httpx.Response(status, json={"error": {"code": status, "message": "simulated failure"}})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if str(request.url) == self.TOKEN_URL:
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            form = parse_qs(request.content.decode())
            if set(form.get("refresh_token", [])) & self.rejected_refresh_tokens:
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token has been revoked."})
            return httpx.Response(200, json={"access_token": "tok-refreshed", "expires_in": 3600})

        key = request.url.path.split("/users/me/", 1)[1]
        queued = self.failures.get(key)
        if queued:
            return self._error(queued.pop(0))

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}})

        if key == "profile":
            return httpx.Response(200, json={"emailAddress": ACCOUNT_EMAIL, "historyId": self.history_id})
        if key == "messages":
            return self._list(request)
        if key == "history":
            if self.history_invalid:
                return httpx.Response(404, json={"error": {"code": 404, "message": "Requested entity was not found."}})
            history = [
                {
                    "id": str(6000 + i),
                    "messagesAdded": [{"message": {"id": mid, "labelIds": self.messages[mid]["labelIds"]}}],
                }
                for i, mid in enumerate(self.history_added)
            ]
            return httpx.Response(200, json={"history": history, "historyId": self.history_id})
        if key.startswith("messages/"):
            message = self.messages.get(key.split("/", 1)[1])
            if message is None:
                return httpx.Response(404, json={"error": {"code": 404, "message": "Not Found"}})
            return httpx.Response(200, json=message)
        return httpx.Response(404, json={"error": {"code": 404}})

    def _list(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        after = before = None
        for term in params.get("q", "").split():
            if term.startswith("after:"):
                after = int(term.split(":", 1)[1])
            elif term.startswith("before:"):
                before = int(term.split(":", 1)[1])
        labels = set(params.get_list("labelIds"))

        ordered = sorted(self.messages.values(), key=lambda m: int(m.get("internalDate") or 0), reverse=True)
        ids = [
            m["id"]
            for m in ordered
            if (after is None or int(m["internalDate"]) // 1000 > after)
            and (before is None or int(m["internalDate"]) // 1000 < before)
            and (not labels or labels & set(m.get("labelIds") or []))
        ]

        start = int(params.get("pageToken") or 0)
        size = int(params.get("maxResults") or 100)
        body = {
            "messages": [{"id": mid, "threadId": f"thread-{mid}"} for mid in ids[start : start + size]],
            "resultSizeEstimate": len(ids),
        }
        if start + size < len(ids):
            body["nextPageToken"] = str(start + size)
        return httpx.Response(200, json=body)


class RecordingPublisher:
    """Collects published sync events."""

    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)


@pytest.fixture
def fake_gmail() -> FakeGmail:
    return FakeGmail()


@pytest.fixture
def http_client(fake_gmail):
    client = httpx.Client(transport=httpx.MockTransport(fake_gmail.handler))
    yield client
    client.close()


@pytest.fixture
def store(tmp_path) -> SQLiteMailStore:
    return SQLiteMailStore(tmp_path / "mailsync.db")


@pytest.fixture
def account(store) -> MailAccount:
    """Connected mailbox with a valid token."""
    acct = MailAccount(
        account_id="acct-1",
        email_address=ACCOUNT_EMAIL,
        access_token="tok-good",
        refresh_token="refresh-1",
        token_expiry=NOW + timedelta(hours=1),
    )
    store.upsert_account(acct)
    return acct


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def make_tokens(http_client, store):
    def _make(**overrides) -> GmailTokenSupervisor:
        cfg = TokenEndpointConfig(client_id="cid", client_secret="secret", **overrides)
        return GmailTokenSupervisor(cfg, accounts=store, http=http_client, clock=lambda: NOW)

    return _make


@pytest.fixture
def make_source(http_client, make_tokens, sleeps):
    def _make(**overrides):
        tokens = make_tokens()
        settings = {"max_retries": 3, "backoff_base_seconds": 1.0, "backoff_max_seconds": 4.0, **overrides}
        source = GmailMessageSource(GmailSourceConfig(**settings), tokens, http=http_client, sleep=sleeps.append)
        return source, tokens

    return _make


@pytest.fixture
def make_sync(make_source, store, publisher):
    def _make(source_overrides: dict | None = None, **sync_overrides) -> SyncMailboxUseCase:
        source, tokens = make_source(**(source_overrides or {}))
        return SyncMailboxUseCase(
            source=source,
            records=store,
            cursors=store,
            clients=store,
            tokens=tokens,
            publisher=publisher,
            cfg=SyncConfig(**sync_overrides),
            clock=lambda: NOW,
        )

    return _make
