"""HTML to plain text for analysis. Rendering keeps the original HTML."""

from __future__ import annotations

import re

_DROP_BLOCKS = re.compile(r"<(script|style|head)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_COMMENTS = re.compile(r"<!--.*?-->", re.DOTALL)
_LINE_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
_PARAGRAPH_END = re.compile(r"</p\s*>", re.IGNORECASE)
_BLOCK_END = re.compile(r"</(?:div|tr|li|h[1-6]|table|ul|ol)\s*>", re.IGNORECASE)
_BLOCKQUOTE_OPEN = re.compile(r"<blockquote\b[^>]*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_NUMERIC_ENTITY = re.compile(r"&#(x[0-9a-fA-F]+|\d+);")
_INLINE_SPACE = re.compile(r"[ \t\xa0]+")
_BLANK_RUN = re.compile(r"\n\s*\n\s*\n+")

# &amp; goes last so "&amp;lt;" decodes to "&lt;" and not "<"
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
    ("&amp;", "&"),
)


def _numeric(match: re.Match) -> str:
    ref = match.group(1)
    try:
        code = int(ref[1:], 16) if ref[0] in "xX" else int(ref)
        return chr(code)
    except (ValueError, OverflowError):
        return match.group(0)


def decode_entities(text: str) -> str:
    text = _NUMERIC_ENTITY.sub(_numeric, text)
    for entity, char in _ENTITIES:
        text = re.sub(re.escape(entity), char, text, flags=re.IGNORECASE)
    return text


def tidy_text(text: str) -> str:
    """Normalize newlines, trim every line, collapse blank-line runs, trim edges."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = _BLANK_RUN.sub("\n\n", text)
    return text.strip()


def html_to_text(html: str) -> str:
    if not html:
        return ""
    text = _DROP_BLOCKS.sub("", html)
    text = _COMMENTS.sub("", text)
    text = _LINE_BREAK.sub("\n", text)
    text = _PARAGRAPH_END.sub("\n\n", text)
    text = _BLOCK_END.sub("\n", text)
    text = _BLOCKQUOTE_OPEN.sub("\n> ", text)
    text = _TAG.sub(" ", text)
    text = decode_entities(text)
    text = "\n".join(_INLINE_SPACE.sub(" ", line).strip() for line in text.split("\n"))
    return tidy_text(text)
