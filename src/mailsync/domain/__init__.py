"""Domain models and entities."""

from mailsync.domain.models import (
    AccountSyncResult,
    Direction,
    Importance,
    SyncCompletedEvent,
    SyncRunSummary,
    SyncState,
    SyncStatus,
    SyncStrategy,
)

__all__ = [
    "Direction",
    "Importance",
    "SyncState",
    "SyncStrategy",
    "SyncStatus",
    "AccountSyncResult",
    "SyncRunSummary",
    "SyncCompletedEvent",
]
