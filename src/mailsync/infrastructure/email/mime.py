"""Body extraction from Gmail `format=full` part trees."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from mailsync.application.ports.email_source import MessageEnvelope, MessagePart
from mailsync.domain.entities.attachment import AttachmentMeta


@dataclass(frozen=True)
class DecodedBody:
    text: str = ""
    is_html: bool = False
    attachments: list[AttachmentMeta] = field(default_factory=list)


def decode_base64url(data: str) -> str:
    """Decode the provider's base64url variant to text. Invalid input yields ''."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, ValueError, UnicodeEncodeError) as e:
        logger.warning(f"Could not decode body data: {e}")
        return ""
    return raw.decode("utf-8", errors="replace")


def _is_html(mime_type: str) -> bool:
    return "html" in mime_type


@dataclass
class _Walk:
    html: Optional[str] = None
    plain: Optional[str] = None
    attachments: list[AttachmentMeta] = field(default_factory=list)


def _walk(part: MessagePart, state: _Walk) -> None:
    # Any part carrying a filename is an attachment and never contributes text
    if part.filename:
        state.attachments.append(
            AttachmentMeta(
                filename=part.filename,
                content_type=part.mime_type or "application/octet-stream",
                size_bytes=part.body_size,
                attachment_id=part.attachment_id,
            )
        )
    elif part.body_data:
        if part.mime_type.startswith("text/html") and state.html is None:
            text = decode_base64url(part.body_data)
            if text:
                state.html = text
        elif part.mime_type.startswith("text/plain") and state.plain is None:
            text = decode_base64url(part.body_data)
            if text:
                state.plain = text

    for child in part.parts:
        _walk(child, state)


def decode_envelope(envelope: MessageEnvelope) -> DecodedBody:
    """Pick the best text representation of a message and list its attachments.

    A single inline top-level body is decoded directly. Otherwise the part tree
    is walked depth first: the first text/html part wins, then the first
    text/plain part. Never raises.
    """
    payload = envelope.payload
    state = _Walk()

    if payload.body_data and not payload.parts and not payload.filename:
        text = decode_base64url(payload.body_data)
        return DecodedBody(text=text, is_html=_is_html(payload.mime_type), attachments=[])

    _walk(payload, state)

    if state.html is not None:
        return DecodedBody(text=state.html, is_html=True, attachments=state.attachments)
    if state.plain is not None:
        return DecodedBody(text=state.plain, is_html=False, attachments=state.attachments)

    logger.debug(f"No decodable text part in message {envelope.id}")
    return DecodedBody(text="", is_html=False, attachments=state.attachments)
