from __future__ import annotations
from typing import Optional, Protocol
from mailsync.domain.entities.sync_cursor import SyncCursor

class CursorStore(Protocol):
    def load(self, account_id: str, folder: str) -> Optional[SyncCursor]: ...
    def save(self, cursor: SyncCursor) -> None: ...
