from __future__ import annotations
from datetime import datetime
from typing import Optional, Protocol

from mailsync.domain.entities.email_record import EmailFlags, EmailRecord
from mailsync.domain.entities.mail_account import ClientAddress, MailAccount


class EmailRecordStore(Protocol):
    def get_flags(self, account_id: str, provider_message_id: str) -> Optional[EmailFlags]: ...
    def insert(self, record: EmailRecord) -> None: ...  # raises StorageConflictError
    def update_flags(self, account_id: str, provider_message_id: str, flags: EmailFlags) -> None: ...
    def count(self, account_id: str) -> int: ...


class ClientDirectory(Protocol):
    def clients_for(self, account_id: str) -> list[ClientAddress]: ...


class AccountStore(Protocol):
    def list_accounts(self) -> list[MailAccount]: ...
    def get_account(self, account_id: str) -> Optional[MailAccount]: ...
    def find_by_email(self, email_address: str) -> Optional[MailAccount]: ...
    def save_token(self, account_id: str, access_token: str, expiry: datetime) -> None: ...
