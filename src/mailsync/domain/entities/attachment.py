from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class AttachmentMeta:
    filename: str
    content_type: str
    size_bytes: int

    # Provider handle for a later download; bytes are never fetched during sync
    attachment_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "attachment_id": self.attachment_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttachmentMeta":
        return cls(
            filename=data.get("filename", ""),
            content_type=data.get("content_type", "application/octet-stream"),
            size_bytes=int(data.get("size_bytes") or 0),
            attachment_id=data.get("attachment_id"),
        )
