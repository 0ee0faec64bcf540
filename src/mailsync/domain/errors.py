"""Error taxonomy for the sync engine.

Per-message errors never escalate to the account, and per-account errors never
escalate to the whole run.
"""

from __future__ import annotations


class MailSyncError(Exception):
    """Base class for all sync engine errors."""


class AuthExpiredError(MailSyncError):
    """No usable access token for the account; skip it this run."""


class ProviderError(MailSyncError):
    """The provider rejected a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderRateLimited(ProviderError):
    """Rate limit still hit after the retry ceiling."""


class ProviderTransientError(ProviderError):
    """Network failure or 5xx still failing after the retry ceiling."""


class CursorInvalidError(ProviderError):
    """The stored history id is too old or unknown to the provider."""


class MalformedMessageError(MailSyncError):
    """A single provider message could not be turned into a record."""


class StorageConflictError(MailSyncError):
    """Insert hit the (account, provider message id) unique key."""
