from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx
from loguru import logger

from mailsync.application.ports.email_store import AccountStore
from mailsync.application.ports.token_provider import AccessToken
from mailsync.domain.entities.mail_account import MailAccount
from mailsync.domain.errors import AuthExpiredError

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class TokenEndpointConfig:
    client_id: str
    client_secret: str
    token_url: str = GOOGLE_TOKEN_URL
    refresh_window_seconds: int = 600
    timeout_seconds: float = 30.0


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class GmailTokenSupervisor:
    """
    Keeps one usable access token per account for the lifetime of this object.
    Refreshed tokens are written back through the account store so the next
    run starts from them. Create one per sync run; nothing is shared globally.
    """

    def __init__(
        self,
        cfg: TokenEndpointConfig,
        accounts: Optional[AccountStore] = None,
        http: Optional[httpx.Client] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.cfg = cfg
        self.accounts = accounts
        self._http = http or httpx.Client(timeout=cfg.timeout_seconds)
        self._owns_http = http is None
        self._clock = clock
        self._cache: dict[str, AccessToken] = {}
        self._lock = threading.Lock()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def _expiring(self, token: AccessToken) -> bool:
        window = timedelta(seconds=self.cfg.refresh_window_seconds)
        return _aware(token.expiry) - self._clock() <= window

    def ensure_fresh_token(self, account: MailAccount) -> AccessToken:
        with self._lock:
            token = self._cache.get(account.account_id)
        if token is None and account.access_token and account.token_expiry:
            token = AccessToken(account.access_token, _aware(account.token_expiry))

        if token is not None and not self._expiring(token):
            return token

        logger.debug(f"Access token for {account.account_id} missing or near expiry, refreshing")
        return self.force_refresh(account)

    def force_refresh(self, account: MailAccount, stale_token: Optional[str] = None) -> AccessToken:
        """Refresh unconditionally.

        When ``stale_token`` is given and another caller already replaced it,
        the newer cached token is returned instead of refreshing twice.
        """
        with self._lock:
            cached = self._cache.get(account.account_id)
            if (
                stale_token is not None
                and cached is not None
                and cached.access_token != stale_token
                and not self._expiring(cached)
            ):
                return cached

            token = self._refresh(account)
            self._cache[account.account_id] = token

        if self.accounts is not None:
            try:
                self.accounts.save_token(account.account_id, token.access_token, token.expiry)
            except Exception as e:
                # The token is still good for this run
                logger.warning(f"Could not persist refreshed token for {account.account_id}: {e}")
        return token

    def _refresh(self, account: MailAccount) -> AccessToken:
        if not account.refresh_token:
            raise AuthExpiredError(f"No refresh token for account {account.account_id}")

        try:
            resp = self._http.post(
                self.cfg.token_url,
                data={
                    "client_id": self.cfg.client_id,
                    "client_secret": self.cfg.client_secret,
                    "refresh_token": account.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise AuthExpiredError(f"Token endpoint unreachable for {account.account_id}: {e}") from e

        if resp.status_code >= 400:
            raise AuthExpiredError(
                f"Token refresh rejected for {account.account_id}: {resp.status_code} {resp.text[:200]}"
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise AuthExpiredError(f"Token endpoint returned invalid JSON for {account.account_id}") from e

        access_token = data.get("access_token")
        if not access_token:
            raise AuthExpiredError(f"Token endpoint returned no access_token for {account.account_id}")

        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        expiry = self._clock() + timedelta(seconds=expires_in)
        logger.info(f"Refreshed access token for {account.account_id} (expires in {expires_in}s)")
        return AccessToken(access_token=access_token, expiry=expiry)
