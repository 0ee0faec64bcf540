"""Column mapping shared by the SQL record stores."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from mailsync.domain.entities.attachment import AttachmentMeta
from mailsync.domain.entities.email_content import KeyInformation
from mailsync.domain.entities.email_record import EmailFlags, EmailRecord
from mailsync.domain.entities.mail_account import MailAccount
from mailsync.domain.entities.sync_cursor import SyncCursor
from mailsync.domain.models import Direction

EMAIL_COLUMNS = (
    "account_id",
    "provider_message_id",
    "thread_id",
    "subject",
    "sender",
    "to_addresses",
    "cc_addresses",
    "bcc_addresses",
    "direction",
    "body",
    "cleaned_body",
    "signature",
    "quoted_content",
    "snippet",
    "key_information",
    "readability_score",
    "attachments",
    "client_id",
    "received_at",
    "labels",
    "is_read",
    "is_starred",
    "is_html",
    "has_attachments",
    "internal_date",
    "source",
    "metadata",
)

JSON_COLUMNS = frozenset(
    {"to_addresses", "cc_addresses", "bcc_addresses", "key_information", "attachments", "labels", "metadata"}
)


def _json(value: Any, default: Any) -> Any:
    # sqlite hands back text, psycopg hands back decoded jsonb
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def record_to_row(record: EmailRecord) -> dict[str, Any]:
    flags = record.flags
    return {
        "account_id": record.account_id,
        "provider_message_id": record.provider_message_id,
        "thread_id": record.thread_id,
        "subject": record.subject,
        "sender": record.sender,
        "to_addresses": list(record.to),
        "cc_addresses": list(record.cc),
        "bcc_addresses": list(record.bcc),
        "direction": record.direction.value,
        "body": record.body,
        "cleaned_body": record.cleaned_body,
        "signature": record.signature,
        "quoted_content": record.quoted_content,
        "snippet": record.snippet,
        "key_information": record.key_information.to_dict(),
        "readability_score": record.readability_score,
        "attachments": [a.to_dict() for a in record.attachments],
        "client_id": record.client_id,
        "received_at": record.received_at,
        "labels": list(flags.labels),
        "is_read": flags.is_read,
        "is_starred": flags.is_starred,
        "is_html": flags.is_html,
        "has_attachments": flags.has_attachments,
        "internal_date": flags.internal_date,
        "source": record.source,
        "metadata": dict(record.metadata),
    }


def flags_from_row(row: Mapping[str, Any]) -> EmailFlags:
    return EmailFlags(
        labels=tuple(_json(row["labels"], [])),
        is_read=bool(row["is_read"]),
        is_starred=bool(row["is_starred"]),
        is_html=bool(row["is_html"]),
        has_attachments=bool(row["has_attachments"]),
        internal_date=row["internal_date"],
    )


def record_from_row(row: Mapping[str, Any]) -> EmailRecord:
    return EmailRecord(
        account_id=row["account_id"],
        provider_message_id=row["provider_message_id"],
        thread_id=row["thread_id"],
        subject=row["subject"],
        sender=row["sender"],
        to=list(_json(row["to_addresses"], [])),
        cc=list(_json(row["cc_addresses"], [])),
        bcc=list(_json(row["bcc_addresses"], [])),
        direction=Direction(row["direction"]),
        body=row["body"],
        cleaned_body=row["cleaned_body"],
        signature=row["signature"],
        quoted_content=row["quoted_content"],
        snippet=row["snippet"],
        key_information=KeyInformation.from_dict(_json(row["key_information"], {})),
        readability_score=float(row["readability_score"] or 0.0),
        attachments=[AttachmentMeta.from_dict(a) for a in _json(row["attachments"], [])],
        client_id=row["client_id"],
        received_at=_dt(row["received_at"]),
        flags=flags_from_row(row),
        source=row["source"],
        metadata=dict(_json(row["metadata"], {})),
    )


def cursor_from_row(row: Mapping[str, Any]) -> SyncCursor:
    return SyncCursor(
        account_id=row["account_id"],
        folder=row["folder"],
        last_synced_at=_dt(row["last_synced_at"]),
        last_sync_count=int(row["last_sync_count"] or 0),
        history_id=row["history_id"],
        updated_at=_dt(row["updated_at"]),
        backfill_before=_dt(row["backfill_before"]),
        backfill_skip_ids=tuple(_json(row["backfill_skip_ids"], [])),
        backfill_started_at=_dt(row["backfill_started_at"]),
    )


def account_from_row(row: Mapping[str, Any]) -> MailAccount:
    return MailAccount(
        account_id=row["account_id"],
        email_address=row["email_address"],
        folder=row["folder"],
        label_ids=list(_json(row["label_ids"], [])),
        access_token=row["access_token"],
        refresh_token=row["refresh_token"],
        token_expiry=_dt(row["token_expiry"]),
        enabled=bool(row["enabled"]),
    )
