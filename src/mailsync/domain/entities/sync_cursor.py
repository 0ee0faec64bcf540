from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

@dataclass(frozen=True)
class SyncCursor:
    # One row per account + folder
    account_id: str
    folder: str
    last_synced_at: Optional[datetime] = None
    last_sync_count: int = 0
    history_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    # Unfinished backfill: list mail older than backfill_before (second precision),
    # skipping ids already taken from that exact second
    backfill_before: Optional[datetime] = None
    backfill_skip_ids: tuple[str, ...] = ()
    # Start of the run that began the backfill; becomes last_synced_at when it finishes
    backfill_started_at: Optional[datetime] = None

    @property
    def backfilling(self) -> bool:
        return self.backfill_before is not None
