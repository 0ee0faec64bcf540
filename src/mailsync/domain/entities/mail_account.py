from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

@dataclass(frozen=True)
class MailAccount:
    """A connected mailbox and its stored OAuth credentials."""

    account_id: str
    email_address: str
    folder: str = "inbox"
    label_ids: list[str] = field(default_factory=lambda: ["INBOX"])
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expiry: Optional[datetime] = None
    enabled: bool = True

    def with_token(self, access_token: str, expiry: datetime) -> "MailAccount":
        return replace(self, access_token=access_token, token_expiry=expiry)


@dataclass(frozen=True)
class ClientAddress:
    client_id: str
    email: str
