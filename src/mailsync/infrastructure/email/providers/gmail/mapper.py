from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr, parsedate_to_datetime

from mailsync.application.ports.email_source import MessageEnvelope

SUBJECT_MAX_CHARS = 500
SENDER_MAX_CHARS = 320


@dataclass(frozen=True)
class EnvelopeHeaders:
    subject: str
    sender: str
    to: list[str]
    cc: list[str]
    bcc: list[str]
    date_header: str


def _address_list(value: str) -> list[str]:
    """'A <a@x.com>, b@y.com' -> ['a@x.com', 'b@y.com']"""
    if not value:
        return []
    out: list[str] = []
    for _, addr in getaddresses([value]):
        addr = addr.strip().lower()
        if addr and addr not in out:
            out.append(addr)
    return out


def _sender_address(value: str) -> str:
    _, addr = parseaddr(value or "")
    # Unparseable From headers fall back to the raw value
    return (addr or value or "").strip().lower()[:SENDER_MAX_CHARS]


def extract_headers(envelope: MessageEnvelope) -> EnvelopeHeaders:
    payload = envelope.payload
    subject = (payload.header("Subject") or "").strip() or "(No Subject)"
    return EnvelopeHeaders(
        subject=subject[:SUBJECT_MAX_CHARS],
        sender=_sender_address(payload.header("From")),
        to=_address_list(payload.header("To")),
        cc=_address_list(payload.header("Cc")),
        bcc=_address_list(payload.header("Bcc")),
        date_header=payload.header("Date").strip(),
    )


def received_at(envelope: MessageEnvelope, date_header: str) -> datetime:
    # internalDate is epoch millis and is what the provider sorts by
    if envelope.internal_date:
        try:
            return datetime.fromtimestamp(int(envelope.internal_date) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            pass

    # Date parsing can be messy; default to now if absent/unparseable
    if date_header:
        try:
            dt = parsedate_to_datetime(date_header)
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        except (TypeError, ValueError, IndexError):
            pass
    return datetime.now(timezone.utc)
