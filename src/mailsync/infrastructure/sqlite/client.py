"""SQLite storage for synced mail, sync cursors, accounts and client addresses."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator, Optional

from loguru import logger

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


def _to_sqlite(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS:
        return json.dumps(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class SQLiteMailStore:
    """Implements the record, cursor, client and account ports on one SQLite file."""

    def __init__(self, db_path: str | Path = "/app/data/mailsync.db"):
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as conn:
            conn.executescript("""
                PRAGMA journal_mode=WAL;

                CREATE TABLE IF NOT EXISTS emails (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id TEXT NOT NULL,
                    provider_message_id TEXT NOT NULL,
                    thread_id TEXT,
                    subject TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    to_addresses TEXT NOT NULL DEFAULT '[]',
                    cc_addresses TEXT NOT NULL DEFAULT '[]',
                    bcc_addresses TEXT NOT NULL DEFAULT '[]',
                    direction TEXT NOT NULL CHECK(direction IN ('inbound','outbound')),
                    body TEXT NOT NULL,
                    cleaned_body TEXT NOT NULL,
                    signature TEXT,
                    quoted_content TEXT,
                    snippet TEXT NOT NULL,
                    key_information TEXT NOT NULL DEFAULT '{}',
                    readability_score REAL NOT NULL DEFAULT 0,
                    attachments TEXT NOT NULL DEFAULT '[]',
                    client_id TEXT,
                    received_at TEXT NOT NULL,
                    labels TEXT NOT NULL DEFAULT '[]',
                    is_read INTEGER NOT NULL DEFAULT 0,
                    is_starred INTEGER NOT NULL DEFAULT 0,
                    is_html INTEGER NOT NULL DEFAULT 0,
                    has_attachments INTEGER NOT NULL DEFAULT 0,
                    internal_date TEXT,
                    source TEXT NOT NULL DEFAULT 'gmail',
                    metadata TEXT NOT NULL DEFAULT '{}',

                    UNIQUE(account_id, provider_message_id)
                );

                CREATE INDEX IF NOT EXISTS idx_emails_account_received
                    ON emails(account_id, received_at);

                CREATE TABLE IF NOT EXISTS sync_cursors (
                    account_id TEXT NOT NULL,
                    folder TEXT NOT NULL,
                    last_synced_at TEXT,
                    last_sync_count INTEGER NOT NULL DEFAULT 0,
                    history_id TEXT,
                    updated_at TEXT,
                    backfill_before TEXT,
                    backfill_skip_ids TEXT NOT NULL DEFAULT '[]',
                    backfill_started_at TEXT,

                    PRIMARY KEY(account_id, folder)
                );

                CREATE TABLE IF NOT EXISTS mail_accounts (
                    account_id TEXT PRIMARY KEY,
                    email_address TEXT NOT NULL UNIQUE,
                    folder TEXT NOT NULL DEFAULT 'inbox',
                    label_ids TEXT NOT NULL DEFAULT '["INBOX"]',
                    access_token TEXT,
                    refresh_token TEXT,
                    token_expiry TEXT,
                    enabled INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS client_addresses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id TEXT NOT NULL,
                    client_id TEXT NOT NULL,
                    email TEXT NOT NULL,

                    UNIQUE(account_id, client_id, email)
                );
            """)
            logger.info(f"SQLite database initialized at {self.db_path}")

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # EmailRecordStore
    # ------------------------------------------------------------------

    def get_flags(self, account_id: str, provider_message_id: str) -> Optional[EmailFlags]:
        with self._connection() as conn:
            row = conn.execute(
                """SELECT labels, is_read, is_starred, is_html, has_attachments, internal_date
                   FROM emails WHERE account_id = ? AND provider_message_id = ?""",
                (account_id, provider_message_id),
            ).fetchone()
        return flags_from_row(row) if row else None

    def insert(self, record: EmailRecord) -> None:
        row = record_to_row(record)
        placeholders = ", ".join("?" for _ in EMAIL_COLUMNS)
        try:
            with self._connection() as conn:
                conn.execute(
                    f"INSERT INTO emails ({', '.join(EMAIL_COLUMNS)}) VALUES ({placeholders})",
                    [_to_sqlite(col, row[col]) for col in EMAIL_COLUMNS],
                )
        except sqlite3.IntegrityError as e:
            raise StorageConflictError(
                f"Email {record.provider_message_id} already stored for {record.account_id}"
            ) from e
        logger.debug(f"Stored email {record.provider_message_id} for {record.account_id}: {record.subject[:50]}")

    def update_flags(self, account_id: str, provider_message_id: str, flags: EmailFlags) -> None:
        with self._connection() as conn:
            conn.execute(
                """UPDATE emails SET labels = ?, is_read = ?, is_starred = ?
                   WHERE account_id = ? AND provider_message_id = ?""",
                (
                    json.dumps(list(flags.labels)),
                    int(flags.is_read),
                    int(flags.is_starred),
                    account_id,
                    provider_message_id,
                ),
            )

    def count(self, account_id: str) -> int:
        with self._connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM emails WHERE account_id = ?", (account_id,)).fetchone()
        return int(row["n"])

    def get_record(self, account_id: str, provider_message_id: str) -> Optional[EmailRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {', '.join(EMAIL_COLUMNS)} FROM emails WHERE account_id = ? AND provider_message_id = ?",
                (account_id, provider_message_id),
            ).fetchone()
        return record_from_row(row) if row else None

    # ------------------------------------------------------------------
    # CursorStore
    # ------------------------------------------------------------------

    def load(self, account_id: str, folder: str) -> Optional[SyncCursor]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM sync_cursors WHERE account_id = ? AND folder = ?",
                (account_id, folder),
            ).fetchone()
        return cursor_from_row(row) if row else None

    def save(self, cursor: SyncCursor) -> None:
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO sync_cursors
                   (account_id, folder, last_synced_at, last_sync_count, history_id, updated_at,
                    backfill_before, backfill_skip_ids, backfill_started_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(account_id, folder) DO UPDATE SET
                       last_synced_at = excluded.last_synced_at,
                       last_sync_count = excluded.last_sync_count,
                       history_id = excluded.history_id,
                       updated_at = excluded.updated_at,
                       backfill_before = excluded.backfill_before,
                       backfill_skip_ids = excluded.backfill_skip_ids,
                       backfill_started_at = excluded.backfill_started_at""",
                (
                    cursor.account_id,
                    cursor.folder,
                    _iso(cursor.last_synced_at),
                    cursor.last_sync_count,
                    cursor.history_id,
                    _iso(cursor.updated_at),
                    _iso(cursor.backfill_before),
                    json.dumps(list(cursor.backfill_skip_ids)),
                    _iso(cursor.backfill_started_at),
                ),
            )

    # ------------------------------------------------------------------
    # ClientDirectory
    # ------------------------------------------------------------------

    def clients_for(self, account_id: str) -> list[ClientAddress]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT client_id, email FROM client_addresses WHERE account_id = ? ORDER BY id",
                (account_id,),
            ).fetchall()
        return [ClientAddress(client_id=r["client_id"], email=r["email"]) for r in rows]

    def add_client(self, account_id: str, client_id: str, email: str) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO client_addresses (account_id, client_id, email) VALUES (?, ?, ?)",
                (account_id, client_id, email.strip().lower()),
            )

    # ------------------------------------------------------------------
    # AccountStore
    # ------------------------------------------------------------------

    def list_accounts(self) -> list[MailAccount]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM mail_accounts ORDER BY account_id").fetchall()
        return [account_from_row(r) for r in rows]

    def get_account(self, account_id: str) -> Optional[MailAccount]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM mail_accounts WHERE account_id = ?", (account_id,)).fetchone()
        return account_from_row(row) if row else None

    def find_by_email(self, email_address: str) -> Optional[MailAccount]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM mail_accounts WHERE lower(email_address) = ?",
                (email_address.strip().lower(),),
            ).fetchone()
        return account_from_row(row) if row else None

    def save_token(self, account_id: str, access_token: str, expiry: datetime) -> None:
        with self._connection() as conn:
            conn.execute(
                "UPDATE mail_accounts SET access_token = ?, token_expiry = ? WHERE account_id = ?",
                (access_token, expiry.isoformat(), account_id),
            )

    def upsert_account(self, account: MailAccount) -> None:
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO mail_accounts
                   (account_id, email_address, folder, label_ids, access_token, refresh_token, token_expiry, enabled)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(account_id) DO UPDATE SET
                       email_address = excluded.email_address,
                       folder = excluded.folder,
                       label_ids = excluded.label_ids,
                       access_token = excluded.access_token,
                       refresh_token = excluded.refresh_token,
                       token_expiry = excluded.token_expiry,
                       enabled = excluded.enabled""",
                (
                    account.account_id,
                    account.email_address.strip().lower(),
                    account.folder,
                    json.dumps(list(account.label_ids)),
                    account.access_token,
                    account.refresh_token,
                    _iso(account.token_expiry),
                    int(account.enabled),
                ),
            )
        logger.info(f"Saved mail account {account.account_id} ({account.email_address})")

