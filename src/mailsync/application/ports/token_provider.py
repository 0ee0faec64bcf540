from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from mailsync.domain.entities.mail_account import MailAccount


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    expiry: datetime


class TokenProvider(Protocol):
    def ensure_fresh_token(self, account: MailAccount) -> AccessToken: ...
    def force_refresh(self, account: MailAccount, stale_token: Optional[str] = None) -> AccessToken: ...
