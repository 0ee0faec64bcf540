"""SQLite infrastructure for mail, cursor and account storage."""

from mailsync.infrastructure.sqlite.client import SQLiteMailStore

__all__ = [
    "SQLiteMailStore",
]
