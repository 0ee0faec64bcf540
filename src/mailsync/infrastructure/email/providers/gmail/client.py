from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from loguru import logger

from mailsync.application.ports.email_source import CandidateListing, FetchOutcome, MessageEnvelope
from mailsync.application.ports.token_provider import TokenProvider
from mailsync.domain.entities.mail_account import MailAccount
from mailsync.domain.entities.sync_cursor import SyncCursor
from mailsync.domain.errors import (
    AuthExpiredError,
    CursorInvalidError,
    MailSyncError,
    ProviderError,
    ProviderRateLimited,
    ProviderTransientError,
)
from mailsync.domain.models import SyncStrategy

GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


@dataclass(frozen=True)
class GmailSourceConfig:
    base_url: str = GMAIL_API_BASE_URL
    page_size: int = 100
    fetch_batch_size: int = 10
    history_enabled: bool = True
    max_retries: int = 5
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 32.0
    timeout_seconds: float = 30.0


def _error_reasons(resp: httpx.Response) -> set[str]:
    try:
        body = resp.json()
    except ValueError:
        return set()
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return set()
    return {e.get("reason", "") for e in error.get("errors") or [] if isinstance(e, dict)}


class GmailMessageSource:
    """
    Gmail REST client for listing and fetching messages.

    Owns retry policy for every provider call: one token refresh on 401,
    exponential backoff on rate limits, 5xx and transport errors.
    """

    def __init__(
        self,
        cfg: GmailSourceConfig,
        tokens: TokenProvider,
        http: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.tokens = tokens
        self._http = http or httpx.Client(timeout=cfg.timeout_seconds)
        self._owns_http = http is None
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "GmailMessageSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _backoff(self, attempt: int, reason: str, retry_after: Optional[str] = None) -> None:
        delay = min(self.cfg.backoff_base_seconds * (2**attempt), self.cfg.backoff_max_seconds)
        if retry_after and retry_after.isdigit():
            delay = min(float(retry_after), self.cfg.backoff_max_seconds)
        logger.warning(f"Gmail {reason}, retry {attempt + 1}/{self.cfg.max_retries} in {delay:.1f}s")
        self._sleep(delay)

    def _request(
        self, account: MailAccount, path: str, params: Optional[dict[str, Any]] = None
    ) -> dict:
        url = f"{self.cfg.base_url.rstrip('/')}/{path.lstrip('/')}"
        token = self.tokens.ensure_fresh_token(account).access_token
        refreshed = False
        attempt = 0

        while True:
            try:
                resp = self._http.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
            except httpx.TransportError as e:
                if attempt >= self.cfg.max_retries:
                    raise ProviderTransientError(f"GET {path} failed: {e}") from e
                self._backoff(attempt, f"transport error ({e.__class__.__name__})")
                attempt += 1
                continue

            status = resp.status_code

            if status == 401:
                if refreshed:
                    raise AuthExpiredError(f"Access token rejected twice for {account.account_id}")
                token = self.tokens.force_refresh(account, stale_token=token).access_token
                refreshed = True
                continue

            if status == 429 or (status == 403 and _error_reasons(resp) & RATE_LIMIT_REASONS):
                if attempt >= self.cfg.max_retries:
                    raise ProviderRateLimited(f"GET {path} still rate limited", status)
                self._backoff(attempt, f"rate limited ({status})", resp.headers.get("Retry-After"))
                attempt += 1
                continue

            if status >= 500:
                if attempt >= self.cfg.max_retries:
                    raise ProviderTransientError(f"GET {path} failed: {status}", status)
                self._backoff(attempt, f"server error ({status})")
                attempt += 1
                continue

            if status >= 400:
                raise ProviderError(f"GET {path} failed: {status} {resp.text[:200]}", status)

            try:
                return resp.json()
            except ValueError as e:
                raise ProviderError(f"GET {path} returned invalid JSON", status) from e

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def get_profile_history_id(self, account: MailAccount) -> Optional[str]:
        data = self._request(account, "profile")
        history_id = data.get("historyId")
        return str(history_id) if history_id else None

    def list_page(
        self, account: MailAccount, query: str, page_token: Optional[str] = None
    ) -> tuple[list[str], Optional[str]]:
        params: dict[str, Any] = {"q": query, "maxResults": self.cfg.page_size}
        if account.label_ids:
            params["labelIds"] = list(account.label_ids)
        if page_token:
            params["pageToken"] = page_token

        data = self._request(account, "messages", params)
        ids = [m["id"] for m in data.get("messages") or [] if m.get("id")]
        return ids, data.get("nextPageToken")

    def list_history_page(
        self, account: MailAccount, start_history_id: str, page_token: Optional[str] = None
    ) -> tuple[list[str], Optional[str]]:
        params: dict[str, Any] = {
            "startHistoryId": start_history_id,
            "historyTypes": "messageAdded",
            "maxResults": self.cfg.page_size,
        }
        if page_token:
            params["pageToken"] = page_token

        try:
            data = self._request(account, "history", params)
        except ProviderError as e:
            if e.status_code == 404:
                raise CursorInvalidError(f"History id {start_history_id} is no longer valid", 404) from e
            raise

        wanted = set(account.label_ids or [])
        ids: list[str] = []
        for entry in data.get("history") or []:
            for added in entry.get("messagesAdded") or []:
                message = added.get("message") or {}
                mid = message.get("id")
                if not mid:
                    continue
                labels = set(message.get("labelIds") or [])
                if wanted and labels and not (labels & wanted):
                    continue
                ids.append(mid)
        return ids, data.get("nextPageToken")

    def _paginate(
        self,
        fetch_page: Callable[[Optional[str]], tuple[list[str], Optional[str]]],
        max_items: int,
        skip: frozenset[str] = frozenset(),
    ) -> tuple[list[str], bool, Optional[str]]:
        """Collect unique ids across pages. Returns (ids, complete, next_page_token)."""
        ids: list[str] = []
        seen: set[str] = set(skip)
        token: Optional[str] = None

        while True:
            page_ids, token = fetch_page(token)
            for mid in page_ids:
                if mid in seen:
                    continue
                if len(ids) >= max_items:
                    return ids, False, token
                seen.add(mid)
                ids.append(mid)
            if not token:
                return ids, True, None
            if len(ids) >= max_items:
                return ids, False, token

    @staticmethod
    def build_query(folder: str, cursor: Optional[SyncCursor]) -> str:
        query = f"in:{folder}"
        if cursor is not None and cursor.last_synced_at is not None:
            query += f" after:{int(cursor.last_synced_at.timestamp())}"
        if cursor is not None and cursor.backfill_before is not None:
            # before: is exclusive; the boundary second is listed again minus backfill_skip_ids
            query += f" before:{int(cursor.backfill_before.timestamp()) + 1}"
        return query

    def list_candidate_ids(
        self, account: MailAccount, cursor: Optional[SyncCursor], max_items: int
    ) -> CandidateListing:
        # Captured before listing so nothing added during the run is skipped next time
        history_id = self.get_profile_history_id(account)
        fell_back = False

        if cursor is not None and cursor.backfilling:
            query = self.build_query(account.folder, cursor)
            ids, complete, next_token = self._paginate(
                lambda tok: self.list_page(account, query, tok), max_items, frozenset(cursor.backfill_skip_ids)
            )
            logger.debug(f"Backfill listing '{query}' for {account.account_id}: {len(ids)} ids (complete={complete})")
            return CandidateListing(
                ids=ids,
                strategy=SyncStrategy.BACKFILL,
                complete=complete,
                next_page_token=next_token,
                history_id=history_id,
            )

        if self.cfg.history_enabled and cursor is not None and cursor.history_id:
            try:
                ids, complete, next_token = self._paginate(
                    lambda tok: self.list_history_page(account, cursor.history_id, tok), max_items
                )
                logger.debug(f"History listing for {account.account_id}: {len(ids)} ids (complete={complete})")
                return CandidateListing(
                    ids=ids,
                    strategy=SyncStrategy.HISTORY,
                    complete=complete,
                    next_page_token=next_token,
                    history_id=history_id,
                )
            except CursorInvalidError as e:
                logger.warning(f"{e}; falling back to query listing for {account.account_id}")
                fell_back = True

        query = self.build_query(account.folder, cursor)
        ids, complete, next_token = self._paginate(lambda tok: self.list_page(account, query, tok), max_items)
        logger.debug(f"Query listing '{query}' for {account.account_id}: {len(ids)} ids (complete={complete})")
        return CandidateListing(
            ids=ids,
            strategy=SyncStrategy.QUERY,
            complete=complete,
            next_page_token=next_token,
            history_id=history_id,
            fell_back=fell_back,
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def get_message(self, account: MailAccount, message_id: str) -> MessageEnvelope:
        data = self._request(account, f"messages/{message_id}", {"format": "full"})
        return MessageEnvelope.from_api(data)

    def _fetch_one(self, account: MailAccount, message_id: str) -> FetchOutcome:
        try:
            return FetchOutcome(message_id=message_id, envelope=self.get_message(account, message_id))
        except MailSyncError as e:
            return FetchOutcome(message_id=message_id, error=e)

    def get_messages(self, account: MailAccount, message_ids: list[str]) -> list[FetchOutcome]:
        """Fetch details concurrently in groups of ``fetch_batch_size``; order is preserved."""
        batch = max(1, self.cfg.fetch_batch_size)
        outcomes: list[FetchOutcome] = []
        if not message_ids:
            return outcomes

        with ThreadPoolExecutor(max_workers=min(batch, len(message_ids))) as pool:
            for start in range(0, len(message_ids), batch):
                group = message_ids[start : start + batch]
                outcomes.extend(pool.map(lambda mid: self._fetch_one(account, mid), group))
        return outcomes
