from __future__ import annotations
from typing import Protocol
from mailsync.domain.models import SyncCompletedEvent

class SyncEventPublisher(Protocol):
    def publish(self, event: SyncCompletedEvent) -> None: ...
