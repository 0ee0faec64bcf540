"""Domain models for mailsync."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class Direction(str, Enum):
    """Direction of an email relative to the synced mailbox."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Importance(str, Enum):
    """Heuristic importance tier extracted from the body."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SyncState(str, Enum):
    """States of a single account sync run."""

    IDLE = "idle"
    TOKEN_CHECK = "token_check"
    LISTING = "listing"
    FETCHING = "fetching"
    PROCESSING = "processing"
    PERSISTING = "persisting"
    CURSOR_ADVANCE = "cursor_advance"
    DONE = "done"
    ERROR = "error"


class SyncStrategy(str, Enum):
    """How candidate message ids were listed."""

    HISTORY = "history"
    QUERY = "query"
    BACKFILL = "backfill"


class SyncStatus(str, Enum):
    """Outcome of one account run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountSyncResult(BaseModel):
    """Result of syncing one account."""

    account_id: str
    email_address: str | None = None
    status: SyncStatus = SyncStatus.SUCCESS
    processed: int = 0
    stored: int = 0
    updated: int = 0
    errors: list[str] = Field(default_factory=list)
    strategy: SyncStrategy | None = None
    cursor_advanced: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status == SyncStatus.SUCCESS


class SyncRunSummary(BaseModel):
    """Per-account results of a multi-account run."""

    results: list[AccountSyncResult] = Field(default_factory=list)

    @property
    def total_stored(self) -> int:
        return sum(r.stored for r in self.results)

    @property
    def all_succeeded(self) -> bool:
        return all(r.status == SyncStatus.SUCCESS for r in self.results)


class SyncCompletedEvent(BaseModel):
    """Event emitted after a run that stored new mail."""

    event_type: str = "email_sync.completed"
    account_id: str
    email_address: str
    processed: int
    stored: int
    updated: int
    completed_at: datetime = Field(default_factory=_utcnow)

    @property
    def message(self) -> str:
        return f"Synced {self.stored} new emails"
