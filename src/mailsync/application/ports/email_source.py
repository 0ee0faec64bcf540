from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Protocol

from mailsync.domain.entities.mail_account import MailAccount
from mailsync.domain.entities.sync_cursor import SyncCursor
from mailsync.domain.errors import MalformedMessageError
from mailsync.domain.models import SyncStrategy


@dataclass(frozen=True)
class MessagePart:
    mime_type: str = ""
    filename: str = ""
    headers: list[tuple[str, str]] = field(default_factory=list)
    body_data: Optional[str] = None  # base64url, provider alphabet
    body_size: int = 0
    attachment_id: Optional[str] = None
    parts: list["MessagePart"] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "MessagePart":
        body = data.get("body") or {}
        return cls(
            mime_type=(data.get("mimeType") or "").lower(),
            filename=data.get("filename") or "",
            headers=[(h.get("name", ""), h.get("value", "")) for h in data.get("headers") or []],
            body_data=body.get("data"),
            body_size=int(body.get("size") or 0),
            attachment_id=body.get("attachmentId"),
            parts=[cls.from_api(p) for p in data.get("parts") or [] if isinstance(p, dict)],
        )

    def header(self, name: str) -> str:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return ""


@dataclass(frozen=True)
class MessageEnvelope:
    """Provider representation of one message (Gmail `format=full`)."""

    id: str
    thread_id: Optional[str]
    label_ids: list[str]
    internal_date: Optional[str]
    snippet: str
    history_id: Optional[str]
    payload: MessagePart

    @classmethod
    def from_api(cls, data: dict) -> "MessageEnvelope":
        if not isinstance(data, dict) or not data.get("id"):
            raise MalformedMessageError("message has no id")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            raise MalformedMessageError(f"message {data['id']} has no payload")
        return cls(
            id=str(data["id"]),
            thread_id=data.get("threadId"),
            label_ids=list(data.get("labelIds") or []),
            internal_date=data.get("internalDate"),
            snippet=data.get("snippet") or "",
            history_id=data.get("historyId"),
            payload=MessagePart.from_api(payload),
        )


@dataclass(frozen=True)
class CandidateListing:
    ids: list[str]
    strategy: SyncStrategy
    # False when the item ceiling stopped pagination early
    complete: bool = True
    next_page_token: Optional[str] = None
    # Provider history id captured before listing started
    history_id: Optional[str] = None
    fell_back: bool = False


@dataclass(frozen=True)
class FetchOutcome:
    message_id: str
    envelope: Optional[MessageEnvelope] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.envelope is not None


class MessageSource(Protocol):
    def list_candidate_ids(
        self, account: MailAccount, cursor: Optional[SyncCursor], max_items: int
    ) -> CandidateListing: ...

    def get_message(self, account: MailAccount, message_id: str) -> MessageEnvelope: ...

    def get_messages(self, account: MailAccount, message_ids: list[str]) -> list[FetchOutcome]: ...
