"""Turn a decoded body into cleaned text plus heuristic signal.

Pure and deterministic: the same input always yields the same output, which
is what makes re-syncing a message idempotent.
"""

from __future__ import annotations

from mailsync.application.content.html import html_to_text, tidy_text
from mailsync.application.content.key_info import extract_key_information
from mailsync.application.content.readability import reading_ease
from mailsync.application.content.sections import split_sections
from mailsync.domain.entities.email_content import ProcessedEmailContent

MIN_CONTENT_CHARS = 10
SNIPPET_CHARS = 150


def make_snippet(text: str, limit: int = SNIPPET_CHARS) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit].rstrip() + "..."


class ContentNormalizer:
    def __init__(self, min_chars: int = MIN_CONTENT_CHARS, snippet_chars: int = SNIPPET_CHARS) -> None:
        self.min_chars = min_chars
        self.snippet_chars = snippet_chars

    def normalize(self, text: str, is_html: bool = False) -> ProcessedEmailContent:
        plain = html_to_text(text) if is_html else tidy_text(text or "")

        if len("".join(plain.split())) < self.min_chars:
            # Too short to analyse: keep the text itself, skip the heuristics
            return ProcessedEmailContent(
                cleaned_body=plain,
                snippet=make_snippet(plain, self.snippet_chars),
                plain_text=plain,
            )

        body, signature, quoted = split_sections(plain)
        cleaned = tidy_text(body)

        return ProcessedEmailContent(
            cleaned_body=cleaned,
            signature=signature,
            quoted_content=quoted,
            snippet=make_snippet(cleaned or plain, self.snippet_chars),
            key_information=extract_key_information(cleaned, signature),
            readability_score=reading_ease(cleaned),
            plain_text=plain,
        )
