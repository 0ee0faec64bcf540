"""Run mailbox syncs for one or many accounts."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from loguru import logger

from mailsync.application.ports.email_store import AccountStore
from mailsync.application.use_cases.sync_mailbox import SyncMailboxUseCase
from mailsync.domain.entities.mail_account import MailAccount
from mailsync.domain.models import AccountSyncResult, SyncRunSummary, SyncStatus

SYNC_IN_PROGRESS = "sync already in progress"


class AccountLocks:
    """One non-blocking lock per account id."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(account_id, threading.Lock())

    @contextmanager
    def hold(self, account_id: str) -> Iterator[bool]:
        """Yield True when the lock was taken, False when the account is busy."""
        lock = self._lock_for(account_id)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    def is_busy(self, account_id: str) -> bool:
        return self._lock_for(account_id).locked()


def _failed(account_id: str, email_address: Optional[str], error: str) -> AccountSyncResult:
    return AccountSyncResult(
        account_id=account_id,
        email_address=email_address,
        status=SyncStatus.FAILED,
        errors=[error],
        finished_at=datetime.now(timezone.utc),
    )


class SyncAccountsUseCase:
    """Trigger surface for account syncs.

    Each account run gets a fresh ``SyncMailboxUseCase`` from ``mailbox_sync``
    so per-run state (token cache, retry counters) never leaks between runs.
    A failing account never affects the others.
    """

    def __init__(
        self,
        accounts: AccountStore,
        mailbox_sync: Callable[[], SyncMailboxUseCase],
        locks: Optional[AccountLocks] = None,
        max_workers: int = 4,
    ) -> None:
        self.accounts = accounts
        self.mailbox_sync = mailbox_sync
        self.locks = locks or AccountLocks()
        self.max_workers = max(1, max_workers)

    def sync_account(self, account_id: str, incremental: bool = True) -> AccountSyncResult:
        account = self.accounts.get_account(account_id)
        if account is None:
            logger.warning(f"Sync requested for unknown account {account_id}")
            return _failed(account_id, None, f"unknown account {account_id}")
        if not account.enabled:
            logger.warning(f"Sync requested for disabled account {account_id}")
            return _failed(account_id, account.email_address, "account disabled")
        return self._run_account(account, incremental)

    def sync_all(self, incremental: bool = True) -> SyncRunSummary:
        accounts = [a for a in self.accounts.list_accounts() if a.enabled]
        if not accounts:
            logger.info("No enabled accounts to sync")
            return SyncRunSummary()

        logger.info(f"Syncing {len(accounts)} accounts with {self.max_workers} workers")
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(accounts))) as pool:
            results = list(pool.map(lambda a: self._run_account(a, incremental), accounts))

        summary = SyncRunSummary(results=results)
        failed = sum(1 for r in results if r.status == SyncStatus.FAILED)
        logger.info(f"Sync run finished: {len(results)} accounts, {summary.total_stored} stored, {failed} failed")
        return summary

    def _run_account(self, account: MailAccount, incremental: bool) -> AccountSyncResult:
        with self.locks.hold(account.account_id) as acquired:
            if not acquired:
                logger.warning(f"Sync for {account.account_id} skipped: {SYNC_IN_PROGRESS}")
                return _failed(account.account_id, account.email_address, SYNC_IN_PROGRESS)
            try:
                return self.mailbox_sync().run(account, incremental=incremental)
            except Exception as e:
                logger.error(f"Sync for {account.account_id} crashed: {e}")
                return _failed(account.account_id, account.email_address, str(e))
