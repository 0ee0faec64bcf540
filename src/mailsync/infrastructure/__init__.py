"""Infrastructure layer - provider clients, storage, and configuration."""

from mailsync.infrastructure.settings import Settings, get_settings
from mailsync.infrastructure.sqlite.client import SQLiteMailStore


def build_services(*args, **kwargs):
    """Build the sync services (lazy import)."""
    from mailsync.infrastructure.factory import build_services as _build
    return _build(*args, **kwargs)


__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Storage
    "SQLiteMailStore",
    # Wiring
    "build_services",
]
