"""Body cleaning and heuristic extraction."""

from mailsync.application.content.normalizer import ContentNormalizer

__all__ = [
    "ContentNormalizer",
]
