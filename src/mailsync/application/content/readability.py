from __future__ import annotations

import re

_WORD = re.compile(r"[A-Za-z]+(?:'[A-Za-z]+)?")
_SENTENCE_END = re.compile(r"[.!?]+")
_SILENT_TAIL = re.compile(r"(?:[^laeiouy]es|[^laeiouy]ed|[^laeiouy]e)$")
_VOWEL_GROUP = re.compile(r"[aeiouy]{1,2}")


def count_syllables(word: str) -> int:
    word = re.sub(r"[^a-z]", "", word.lower())
    if not word:
        return 0
    if len(word) <= 3:
        return 1
    word = _SILENT_TAIL.sub("", word)
    word = re.sub(r"^y", "", word)
    return max(1, len(_VOWEL_GROUP.findall(word)))


def reading_ease(text: str) -> float:
    """Flesch reading ease clamped to [0, 100], one decimal."""
    words = _WORD.findall(text or "")
    if not words:
        return 0.0
    sentences = max(1, len([s for s in _SENTENCE_END.split(text) if s.strip()]))
    syllables = sum(count_syllables(w) for w in words)
    score = 206.835 - 1.015 * (len(words) / sentences) - 84.6 * (syllables / len(words))
    return round(min(100.0, max(0.0, score)), 1)
