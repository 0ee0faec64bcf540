from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from mailsync.domain.models import Importance


@dataclass(frozen=True)
class KeyInformation:
    summary: str = ""
    action_items: list[str] = field(default_factory=list)
    important_dates: list[str] = field(default_factory=list)
    contacts: list[str] = field(default_factory=list)
    importance: Importance = Importance.MEDIUM

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "action_items": list(self.action_items),
            "important_dates": list(self.important_dates),
            "contacts": list(self.contacts),
            "importance": self.importance.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KeyInformation":
        return cls(
            summary=data.get("summary", ""),
            action_items=list(data.get("action_items") or []),
            important_dates=list(data.get("important_dates") or []),
            contacts=list(data.get("contacts") or []),
            importance=Importance(data.get("importance", Importance.MEDIUM.value)),
        )


@dataclass(frozen=True)
class ProcessedEmailContent:
    """Output of the content normalizer for one message body."""

    cleaned_body: str = ""
    signature: Optional[str] = None
    quoted_content: Optional[str] = None
    snippet: str = ""
    key_information: KeyInformation = field(default_factory=KeyInformation)
    readability_score: float = 0.0
    # Tag-free text the analysis ran on (equals the input when it was not HTML)
    plain_text: str = ""
