"""Signature and quoted-thread detection.

Both detectors are ordered rule lists; the earliest offset across all rules of
a kind wins. Quote rules see the whole text. Signature rules only see its last
SIGNATURE_WINDOW lines, and a marker followed by a prose sentence is passed
over, so an early "Thanks!" does not swallow the request.
Quoted content is cut first, and the signature is searched only in what
precedes it, so a signature inside a quoted reply stays with the quote.
"""

from __future__ import annotations

import re
from typing import Optional

_QUOTE_RULES = (
    # "> previous text"
    re.compile(r"^[ \t]*>", re.MULTILINE),
    # "On Mon, 1 Jan 2024 at 10:00, Jane <j@x.com> wrote:" (clients wrap this onto two lines)
    re.compile(r"^[ \t]*On\b[^\n]{0,300}?(?:\n[^\n]{0,300}?)?\bwrote:[ \t]*$", re.MULTILINE),
    # Forward / reply header block
    re.compile(r"^[ \t]*From:[ \t]*\S", re.MULTILINE),
    re.compile(
        r"^[ \t]*-{2,}[ \t]*(?:Forwarded message|Original Message)[ \t]*-{2,}",
        re.MULTILINE | re.IGNORECASE,
    ),
    # Horizontal rule separators
    re.compile(r"^[ \t]*(?:-{3,}|_{5,}|={5,})[ \t]*$", re.MULTILINE),
)

_SIGNATURE_RULES = (
    # RFC 3676 style delimiter
    re.compile(r"^--[ \t]*$", re.MULTILINE),
    re.compile(
        r"^[ \t]*(?:best regards|kind regards|warm regards|warmest regards|best wishes|"
        r"yours sincerely|yours truly|sincerely|regards|thanks (?:and|&) regards|"
        r"many thanks|thank you|thanks|cheers|best)[ \t]*[,.!]?[ \t]*$",
        re.MULTILINE | re.IGNORECASE,
    ),
    # Mobile client footers
    re.compile(
        r"^[ \t]*(?:sent from my \w+|sent from (?:yahoo mail|mail for windows|outlook)|"
        r"get outlook for (?:ios|android))",
        re.MULTILINE | re.IGNORECASE,
    ),
)

# Six or more words ending in sentence punctuation
_PROSE_LINE = re.compile(r"^(?:\S+[ \t]+){5,}\S*[.?!]$")

_NAME_LINE = re.compile(r"^[A-Z][A-Za-z'.-]+(?:[ \t]+[A-Z][A-Za-z'.-]+){1,3}$")
_TITLE_MARKERS = re.compile(
    r"\b(?:manager|director|ceo|cto|cfo|coo|founder|president|owner|agent|consultant|"
    r"specialist|advisor|coordinator|executive|officer|inc|llc|ltd|corp|company|"
    r"travel|tours|agency|group)\b",
    re.IGNORECASE,
)

STRUCTURAL_WINDOW = 10
SIGNATURE_WINDOW = 15


def _earliest(rules: tuple[re.Pattern, ...], text: str) -> Optional[int]:
    starts = [m.start() for rule in rules if (m := rule.search(text))]
    return min(starts) if starts else None


def find_quote_start(text: str) -> Optional[int]:
    return _earliest(_QUOTE_RULES, text)


def _structural_signature_start(text: str) -> Optional[int]:
    """Short name-like line directly followed by a title/organization line."""
    lines: list[tuple[int, str]] = []
    offset = 0
    for line in text.split("\n"):
        if line.strip():
            lines.append((offset, line.strip()))
        offset += len(line) + 1

    window = lines[-STRUCTURAL_WINDOW:]
    for (start, line), (_, following) in zip(window, window[1:]):
        if len(line) > 40 or "@" in line or any(c.isdigit() for c in line):
            continue
        if _NAME_LINE.match(line) and _TITLE_MARKERS.search(following):
            return start
    return None


def _trailing_offset(text: str, count: int) -> int:
    """Offset where the last `count` lines of text (trailing blanks ignored) begin."""
    lines = text.rstrip().split("\n")
    return sum(len(line) + 1 for line in lines[:-count]) if len(lines) > count else 0


def _closing_marker_start(window: str) -> Optional[int]:
    """Earliest signature marker with no prose sentence after it, else the last marker."""
    starts = sorted({m.start() for rule in _SIGNATURE_RULES for m in rule.finditer(window)})
    for start in starts:
        following = window[start:].split("\n")[1:]
        if not any(_PROSE_LINE.match(line.strip()) for line in following):
            return start
    return starts[-1] if starts else None


def find_signature_start(text: str) -> Optional[int]:
    window_start = _trailing_offset(text, SIGNATURE_WINDOW)
    start = _closing_marker_start(text[window_start:])
    if start is not None:
        return window_start + start
    return _structural_signature_start(text)


def split_sections(text: str) -> tuple[str, Optional[str], Optional[str]]:
    """Split text into (body, signature, quoted_content)."""
    quoted: Optional[str] = None
    head = text
    quote_start = find_quote_start(text)
    if quote_start is not None:
        head, quoted = text[:quote_start], text[quote_start:].strip() or None

    signature: Optional[str] = None
    sig_start = find_signature_start(head)
    if sig_start is not None:
        head, signature = head[:sig_start], head[sig_start:].strip() or None

    return head.strip(), signature, quoted
