from __future__ import annotations

import re

from mailsync.domain.entities.email_content import KeyInformation
from mailsync.domain.models import Importance

MAX_ACTION_ITEMS = 3
MAX_DATES = 3
MAX_EMAILS = 3
MAX_PHONES = 3
SUMMARY_MAX_CHARS = 200
ACTION_MAX_CHARS = 200

_ACTION = re.compile(r"\b(?:please|need to|can you|could you|would you)\b[^.!?\n]*[.!?]?", re.IGNORECASE)

_DATES = (
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(
        r"\b(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?|"
        r"sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}\b",
        re.IGNORECASE,
    ),
)

_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE = re.compile(r"(?<![\w+])(?:\+\d{1,3}[\s.-]?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)")

_LOW_PRIORITY = re.compile(
    r"\b(?:no rush|no hurry|not urgent|low priority|when you have time|"
    r"whenever you (?:get|have) (?:a )?(?:chance|time)|fyi)\b",
    re.IGNORECASE,
)
_HIGH_PRIORITY = re.compile(
    r"\b(?:urgent|urgently|asap|as soon as possible|immediately|emergency|critical|"
    r"time[- ]sensitive|high priority|right away)\b",
    re.IGNORECASE,
)

_SENTENCE = re.compile(r"^(.+?[.!?])(?=\s|$)")
_SPACES = re.compile(r"\s+")


def _unique(items, limit: int) -> list[str]:
    out: list[str] = []
    for item in items:
        if item and item not in out:
            out.append(item)
        if len(out) >= limit:
            break
    return out


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


def extract_action_items(text: str) -> list[str]:
    found = (_clip(_SPACES.sub(" ", m.group(0)).strip(), ACTION_MAX_CHARS) for m in _ACTION.finditer(text))
    return _unique(found, MAX_ACTION_ITEMS)


def extract_dates(text: str) -> list[str]:
    hits = sorted((m.start(), m.group(0)) for rule in _DATES for m in rule.finditer(text))
    return _unique((value for _, value in hits), MAX_DATES)


def extract_contacts(text: str) -> list[str]:
    emails = _unique((m.group(0).lower() for m in _EMAIL.finditer(text)), MAX_EMAILS)
    phones = _unique((m.group(0).strip() for m in _PHONE.finditer(text)), MAX_PHONES)
    return emails + phones


def classify_importance(text: str) -> Importance:
    # "not urgent" must not count as urgent, so low phrases are cut out first
    has_low = bool(_LOW_PRIORITY.search(text))
    remainder = _LOW_PRIORITY.sub(" ", text)
    if _HIGH_PRIORITY.search(remainder):
        return Importance.HIGH
    if has_low:
        return Importance.LOW
    return Importance.MEDIUM


def summarize(text: str) -> str:
    flat = _SPACES.sub(" ", text).strip()
    if not flat:
        return ""
    match = _SENTENCE.match(flat)
    sentence = match.group(1) if match else flat
    return _clip(sentence, SUMMARY_MAX_CHARS)


def extract_key_information(body: str, contact_text: str | None = None) -> KeyInformation:
    """Heuristic signal from a cleaned body.

    Contacts are also searched in ``contact_text`` (typically the signature),
    where phone numbers usually live.
    """
    contact_source = body if not contact_text else f"{body}\n{contact_text}"
    return KeyInformation(
        summary=summarize(body),
        action_items=extract_action_items(body),
        important_dates=extract_dates(body),
        contacts=extract_contacts(contact_source),
        importance=classify_importance(body),
    )
