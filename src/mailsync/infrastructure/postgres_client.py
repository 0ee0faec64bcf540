"""PostgreSQL storage for synced mail, sync cursors, accounts and client addresses."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator, Optional

import psycopg
from loguru import logger
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from mailsync.domain.entities.email_record import EmailFlags, EmailRecord
from mailsync.domain.entities.mail_account import ClientAddress, MailAccount
from mailsync.domain.entities.sync_cursor import SyncCursor
from mailsync.domain.errors import StorageConflictError
from mailsync.infrastructure.record_rows import (
    EMAIL_COLUMNS,
    JSON_COLUMNS,
    account_from_row,
    cursor_from_row,
    flags_from_row,
    record_from_row,
    record_to_row,
)
from mailsync.infrastructure.settings import Settings, get_settings

SCHEMA = """
CREATE TABLE IF NOT EXISTS emails (
    id BIGSERIAL PRIMARY KEY,
    account_id VARCHAR(255) NOT NULL,
    provider_message_id VARCHAR(255) NOT NULL,
    thread_id VARCHAR(255),
    subject VARCHAR(500) NOT NULL,
    sender TEXT NOT NULL,
    to_addresses JSONB NOT NULL DEFAULT '[]'::jsonb,
    cc_addresses JSONB NOT NULL DEFAULT '[]'::jsonb,
    bcc_addresses JSONB NOT NULL DEFAULT '[]'::jsonb,
    direction VARCHAR(16) NOT NULL CHECK (direction IN ('inbound', 'outbound')),
    body TEXT NOT NULL,
    cleaned_body TEXT NOT NULL,
    signature TEXT,
    quoted_content TEXT,
    snippet TEXT NOT NULL,
    key_information JSONB NOT NULL DEFAULT '{}'::jsonb,
    readability_score DOUBLE PRECISION NOT NULL DEFAULT 0,
    attachments JSONB NOT NULL DEFAULT '[]'::jsonb,
    client_id VARCHAR(255),
    received_at TIMESTAMP WITH TIME ZONE NOT NULL,
    labels JSONB NOT NULL DEFAULT '[]'::jsonb,
    is_read BOOLEAN NOT NULL DEFAULT FALSE,
    is_starred BOOLEAN NOT NULL DEFAULT FALSE,
    is_html BOOLEAN NOT NULL DEFAULT FALSE,
    has_attachments BOOLEAN NOT NULL DEFAULT FALSE,
    internal_date VARCHAR(32),
    source VARCHAR(32) NOT NULL DEFAULT 'gmail',
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (account_id, provider_message_id)
);

CREATE INDEX IF NOT EXISTS idx_emails_account_received ON emails(account_id, received_at);

CREATE TABLE IF NOT EXISTS sync_cursors (
    account_id VARCHAR(255) NOT NULL,
    folder VARCHAR(255) NOT NULL,
    last_synced_at TIMESTAMP WITH TIME ZONE,
    last_sync_count INTEGER NOT NULL DEFAULT 0,
    history_id VARCHAR(64),
    updated_at TIMESTAMP WITH TIME ZONE,
    backfill_before TIMESTAMP WITH TIME ZONE,
    backfill_skip_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
    backfill_started_at TIMESTAMP WITH TIME ZONE,
    PRIMARY KEY (account_id, folder)
);

CREATE TABLE IF NOT EXISTS mail_accounts (
    account_id VARCHAR(255) PRIMARY KEY,
    email_address VARCHAR(320) NOT NULL UNIQUE,
    folder VARCHAR(255) NOT NULL DEFAULT 'inbox',
    label_ids JSONB NOT NULL DEFAULT '["INBOX"]'::jsonb,
    access_token TEXT,
    refresh_token TEXT,
    token_expiry TIMESTAMP WITH TIME ZONE,
    enabled BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS client_addresses (
    id BIGSERIAL PRIMARY KEY,
    account_id VARCHAR(255) NOT NULL,
    client_id VARCHAR(255) NOT NULL,
    email VARCHAR(320) NOT NULL,
    UNIQUE (account_id, client_id, email)
);
"""


def _to_pg(column: str, value: Any) -> Any:
    return Jsonb(value) if column in JSON_COLUMNS else value


class PostgresMailStore:
    """Implements the record, cursor, client and account ports on PostgreSQL."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @contextmanager
    def _connection(self) -> Generator[psycopg.Connection, None, None]:
        # One short-lived connection per operation so account threads never share a transaction
        with psycopg.connect(self.settings.postgres_dsn, row_factory=dict_row) as conn:
            yield conn

    def setup_schema(self) -> None:
        """Set up database schema for the application."""
        logger.info(f"Connecting to PostgreSQL at {self.settings.postgres_host}:{self.settings.postgres_port}")
        with self._connection() as conn:
            conn.execute(SCHEMA)
        logger.info("Database schema setup complete")

    # ------------------------------------------------------------------
    # EmailRecordStore
    # ------------------------------------------------------------------

    def get_flags(self, account_id: str, provider_message_id: str) -> Optional[EmailFlags]:
        with self._connection() as conn:
            row = conn.execute(
                """SELECT labels, is_read, is_starred, is_html, has_attachments, internal_date
                   FROM emails WHERE account_id = %s AND provider_message_id = %s""",
                (account_id, provider_message_id),
            ).fetchone()
        return flags_from_row(row) if row else None

    def insert(self, record: EmailRecord) -> None:
        row = record_to_row(record)
        placeholders = ", ".join("%s" for _ in EMAIL_COLUMNS)
        with self._connection() as conn:
            cur = conn.execute(
                f"""INSERT INTO emails ({', '.join(EMAIL_COLUMNS)}) VALUES ({placeholders})
                    ON CONFLICT (account_id, provider_message_id) DO NOTHING""",
                [_to_pg(col, row[col]) for col in EMAIL_COLUMNS],
            )
            inserted = cur.rowcount
        if inserted == 0:
            raise StorageConflictError(
                f"Email {record.provider_message_id} already stored for {record.account_id}"
            )
        logger.debug(f"Stored email {record.provider_message_id} for {record.account_id}: {record.subject[:50]}")

    def update_flags(self, account_id: str, provider_message_id: str, flags: EmailFlags) -> None:
        with self._connection() as conn:
            conn.execute(
                """UPDATE emails SET labels = %s, is_read = %s, is_starred = %s
                   WHERE account_id = %s AND provider_message_id = %s""",
                (Jsonb(list(flags.labels)), flags.is_read, flags.is_starred, account_id, provider_message_id),
            )

    def count(self, account_id: str) -> int:
        with self._connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM emails WHERE account_id = %s", (account_id,)).fetchone()
        return int(row["n"])

    def get_record(self, account_id: str, provider_message_id: str) -> Optional[EmailRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {', '.join(EMAIL_COLUMNS)} FROM emails WHERE account_id = %s AND provider_message_id = %s",
                (account_id, provider_message_id),
            ).fetchone()
        return record_from_row(row) if row else None

    # ------------------------------------------------------------------
    # CursorStore
    # ------------------------------------------------------------------

    def load(self, account_id: str, folder: str) -> Optional[SyncCursor]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM sync_cursors WHERE account_id = %s AND folder = %s",
                (account_id, folder),
            ).fetchone()
        return cursor_from_row(row) if row else None

    def save(self, cursor: SyncCursor) -> None:
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO sync_cursors
                   (account_id, folder, last_synced_at, last_sync_count, history_id, updated_at,
                    backfill_before, backfill_skip_ids, backfill_started_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                   ON CONFLICT (account_id, folder) DO UPDATE SET
                       last_synced_at = EXCLUDED.last_synced_at,
                       last_sync_count = EXCLUDED.last_sync_count,
                       history_id = EXCLUDED.history_id,
                       updated_at = EXCLUDED.updated_at,
                       backfill_before = EXCLUDED.backfill_before,
                       backfill_skip_ids = EXCLUDED.backfill_skip_ids,
                       backfill_started_at = EXCLUDED.backfill_started_at""",
                (
                    cursor.account_id,
                    cursor.folder,
                    cursor.last_synced_at,
                    cursor.last_sync_count,
                    cursor.history_id,
                    cursor.updated_at,
                    cursor.backfill_before,
                    Jsonb(list(cursor.backfill_skip_ids)),
                    cursor.backfill_started_at,
                ),
            )

    # ------------------------------------------------------------------
    # ClientDirectory
    # ------------------------------------------------------------------

    def clients_for(self, account_id: str) -> list[ClientAddress]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT client_id, email FROM client_addresses WHERE account_id = %s ORDER BY id",
                (account_id,),
            ).fetchall()
        return [ClientAddress(client_id=r["client_id"], email=r["email"]) for r in rows]

    # ------------------------------------------------------------------
    # AccountStore
    # ------------------------------------------------------------------

    def list_accounts(self) -> list[MailAccount]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM mail_accounts ORDER BY account_id").fetchall()
        return [account_from_row(r) for r in rows]

    def get_account(self, account_id: str) -> Optional[MailAccount]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM mail_accounts WHERE account_id = %s", (account_id,)).fetchone()
        return account_from_row(row) if row else None

    def find_by_email(self, email_address: str) -> Optional[MailAccount]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM mail_accounts WHERE lower(email_address) = %s",
                (email_address.strip().lower(),),
            ).fetchone()
        return account_from_row(row) if row else None

    def save_token(self, account_id: str, access_token: str, expiry: datetime) -> None:
        with self._connection() as conn:
            conn.execute(
                "UPDATE mail_accounts SET access_token = %s, token_expiry = %s WHERE account_id = %s",
                (access_token, expiry, account_id),
            )

