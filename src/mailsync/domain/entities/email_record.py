from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from mailsync.domain.entities.attachment import AttachmentMeta
from mailsync.domain.entities.email_content import KeyInformation
from mailsync.domain.models import Direction


@dataclass(frozen=True)
class EmailFlags:
    """Provider-owned attributes the engine reads and compares on re-sync."""

    labels: tuple[str, ...] = ()
    is_read: bool = False
    is_starred: bool = False
    is_html: bool = False
    has_attachments: bool = False
    internal_date: Optional[str] = None

    @classmethod
    def from_labels(cls, labels: list[str], **kwargs) -> "EmailFlags":
        return cls(
            labels=tuple(labels),
            is_read="UNREAD" not in labels,
            is_starred="STARRED" in labels,
            **kwargs,
        )

    def mutable_differs(self, other: "EmailFlags") -> bool:
        """True when labels, read or starred state changed."""
        return (
            sorted(self.labels) != sorted(other.labels)
            or self.is_read != other.is_read
            or self.is_starred != other.is_starred
        )

    def to_dict(self) -> dict:
        return {
            "labels": list(self.labels),
            "is_read": self.is_read,
            "is_starred": self.is_starred,
            "is_html": self.is_html,
            "has_attachments": self.has_attachments,
            "internal_date": self.internal_date,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmailFlags":
        return cls(
            labels=tuple(data.get("labels") or ()),
            is_read=bool(data.get("is_read", False)),
            is_starred=bool(data.get("is_starred", False)),
            is_html=bool(data.get("is_html", False)),
            has_attachments=bool(data.get("has_attachments", False)),
            internal_date=data.get("internal_date"),
        )


@dataclass(frozen=True)
class EmailRecord:
    account_id: str
    provider_message_id: str
    thread_id: Optional[str]
    subject: str
    sender: str
    to: list[str]
    cc: list[str]
    bcc: list[str]
    direction: Direction
    body: str
    cleaned_body: str
    signature: Optional[str]
    quoted_content: Optional[str]
    snippet: str
    key_information: KeyInformation
    readability_score: float
    attachments: list[AttachmentMeta]
    client_id: Optional[str]
    received_at: datetime
    flags: EmailFlags
    source: str = "gmail"
    # Opaque slot for downstream enrichment; written once, never read here
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.account_id, self.provider_message_id)
