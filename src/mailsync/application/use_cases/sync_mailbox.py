"""Sync one mailbox into the record store."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from loguru import logger

from mailsync.application.content.normalizer import ContentNormalizer
from mailsync.application.ports.checkpoint_store import CursorStore
from mailsync.application.ports.email_source import CandidateListing, MessageEnvelope, MessageSource
from mailsync.application.ports.email_store import ClientDirectory, EmailRecordStore
from mailsync.application.ports.event_publisher import SyncEventPublisher
from mailsync.application.ports.token_provider import TokenProvider
from mailsync.domain.entities.email_record import EmailFlags, EmailRecord
from mailsync.domain.entities.mail_account import ClientAddress, MailAccount
from mailsync.domain.entities.sync_cursor import SyncCursor
from mailsync.domain.errors import AuthExpiredError, MailSyncError, ProviderRateLimited, StorageConflictError
from mailsync.domain.models import (
    AccountSyncResult,
    Direction,
    SyncCompletedEvent,
    SyncState,
    SyncStatus,
    SyncStrategy,
)
from mailsync.infrastructure.email.mime import decode_envelope
from mailsync.infrastructure.email.providers.gmail.mapper import extract_headers, received_at

STORED = "stored"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass(frozen=True)
class SyncConfig:
    max_messages_per_run: int = 2000
    fetch_batch_size: int = 10
    run_timeout_seconds: float = 300.0
    max_body_chars: int = 50_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clip(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    return text[:limit]


def _latest(*stamps: Optional[datetime]) -> Optional[datetime]:
    present = [s for s in stamps if s is not None]
    return max(present) if present else None


def _epoch_second(envelope: MessageEnvelope) -> int:
    return int(received_at(envelope, envelope.payload.header("Date")).timestamp())


def determine_direction(account_email: str, sender: str, recipients: list[str]) -> Direction:
    """Outbound when the mailbox owner sent it, inbound otherwise."""
    own = account_email.strip().lower()
    if own and own in sender.lower():
        return Direction.OUTBOUND
    if own and not any(own in r.lower() for r in recipients):
        logger.debug(f"Message from {sender} names neither side as {own}; treating as inbound")
    return Direction.INBOUND


def resolve_client(
    clients: list[ClientAddress], account_email: str, sender: str, recipients: list[str]
) -> Optional[str]:
    """First client (in index order) whose address appears among the other participants."""
    own = account_email.strip().lower()
    participants = [a.lower() for a in [sender, *recipients] if a and a.lower() != own]
    for client in clients:
        needle = client.email.strip().lower()
        if needle and any(needle in p for p in participants):
            return client.client_id
    return None


@dataclass
class _Run:
    """Mutable state of one account run."""

    account: MailAccount
    result: AccountSyncResult
    state: SyncState = SyncState.IDLE
    truncated: bool = False
    envelopes: list[MessageEnvelope] = field(default_factory=list)
    # Envelopes fetched before the first rate-limit or auth gap, in listing order
    prefix: list[MessageEnvelope] = field(default_factory=list)
    gap: bool = False
    records: list[EmailRecord] = field(default_factory=list)

    def advance(self, new_state: SyncState) -> None:
        logger.debug(f"[{self.account.account_id}] {self.state.value} -> {new_state.value}")
        self.state = new_state

    def fail_message(self, message_id: str, error: object) -> None:
        logger.warning(f"[{self.account.account_id}] skipping message {message_id}: {error}")
        self.result.errors.append(f"{message_id}: {error}")


class SyncMailboxUseCase:
    """Run one account through token check, listing, fetching, processing,
    persisting and cursor advance.

    Per-message failures are recorded and skipped. Anything that stops the
    account (no token, listing failure) ends the run as failed without moving
    the cursor.
    """

    def __init__(
        self,
        source: MessageSource,
        records: EmailRecordStore,
        cursors: CursorStore,
        clients: ClientDirectory,
        tokens: TokenProvider,
        normalizer: Optional[ContentNormalizer] = None,
        publisher: Optional[SyncEventPublisher] = None,
        cfg: SyncConfig = SyncConfig(),
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.records = records
        self.cursors = cursors
        self.clients = clients
        self.tokens = tokens
        self.normalizer = normalizer or ContentNormalizer()
        self.publisher = publisher
        self.cfg = cfg
        self._clock = clock
        self._monotonic = monotonic

    def run(self, account: MailAccount, incremental: bool = True) -> AccountSyncResult:
        started_at = self._clock()
        deadline = self._monotonic() + self.cfg.run_timeout_seconds
        run = _Run(
            account=account,
            result=AccountSyncResult(
                account_id=account.account_id,
                email_address=account.email_address,
                started_at=started_at,
            ),
        )
        result = run.result
        cursor_advanced = False

        try:
            run.advance(SyncState.TOKEN_CHECK)
            self.tokens.ensure_fresh_token(account)

            run.advance(SyncState.LISTING)
            cursor = self.cursors.load(account.account_id, account.folder)
            listing = self.source.list_candidate_ids(
                account, cursor if incremental else None, self.cfg.max_messages_per_run
            )
            result.strategy = listing.strategy
            run.truncated = not listing.complete
            if run.truncated:
                logger.warning(
                    f"[{account.account_id}] listing stopped at {len(listing.ids)} ids, "
                    f"remainder left for the next run"
                )

            run.advance(SyncState.FETCHING)
            self._fetch(run, listing.ids, deadline)

            run.advance(SyncState.PROCESSING)
            self._process(run)

            run.advance(SyncState.PERSISTING)
            self._persist_all(run)

            run.advance(SyncState.CURSOR_ADVANCE)
            self._advance_cursor(run, cursor, listing, started_at)
            cursor_advanced = True

            run.advance(SyncState.DONE)
        except MailSyncError as e:
            run.advance(SyncState.ERROR)
            logger.error(f"[{account.account_id}] sync failed: {e}")
            result.errors.append(str(e))
            result.status = SyncStatus.FAILED
            result.cursor_advanced = cursor_advanced
            result.finished_at = self._clock()
            return result

        result.cursor_advanced = cursor_advanced
        result.status = SyncStatus.PARTIAL if (run.truncated or result.errors) else SyncStatus.SUCCESS
        result.finished_at = self._clock()

        logger.info(
            f"[{account.account_id}] sync {result.status.value}: processed={result.processed} "
            f"stored={result.stored} updated={result.updated} errors={len(result.errors)} "
            f"strategy={result.strategy.value if result.strategy else None}"
        )

        if result.stored > 0:
            self._publish(account, result)
        return result

    # ------------------------------------------------------------------

    def _fetch(self, run: _Run, ids: list[str], deadline: float) -> None:
        batch = max(1, self.cfg.fetch_batch_size)
        for start in range(0, len(ids), batch):
            if self._monotonic() >= deadline:
                run.truncated = True
                run.result.errors.append(f"run deadline reached after {start} of {len(ids)} messages")
                logger.warning(f"[{run.account.account_id}] deadline reached, stopping fetch at {start}/{len(ids)}")
                return

            aborted = False
            for outcome in self.source.get_messages(run.account, ids[start : start + batch]):
                if outcome.ok:
                    run.envelopes.append(outcome.envelope)
                    if not run.gap:
                        run.prefix.append(outcome.envelope)
                    continue
                run.fail_message(outcome.message_id, outcome.error)
                if isinstance(outcome.error, (ProviderRateLimited, AuthExpiredError)):
                    aborted = True
                    run.gap = True

            if aborted:
                run.truncated = True
                logger.warning(f"[{run.account.account_id}] fetch aborted after rate limit or auth failure")
                return

    def _process(self, run: _Run) -> None:
        clients = self.clients.clients_for(run.account.account_id)
        for envelope in run.envelopes:
            try:
                run.records.append(self.build_record(run.account, envelope, clients))
            except Exception as e:
                run.fail_message(envelope.id, e)
        run.result.processed = len(run.records)

    def build_record(
        self, account: MailAccount, envelope: MessageEnvelope, clients: list[ClientAddress]
    ) -> EmailRecord:
        headers = extract_headers(envelope)
        decoded = decode_envelope(envelope)
        content = self.normalizer.normalize(decoded.text, decoded.is_html)
        recipients = [*headers.to, *headers.cc, *headers.bcc]
        limit = self.cfg.max_body_chars

        return EmailRecord(
            account_id=account.account_id,
            provider_message_id=envelope.id,
            thread_id=envelope.thread_id,
            subject=headers.subject,
            sender=headers.sender,
            to=headers.to,
            cc=headers.cc,
            bcc=headers.bcc,
            direction=determine_direction(account.email_address, headers.sender, recipients),
            body=decoded.text[:limit],
            cleaned_body=content.cleaned_body[:limit],
            signature=_clip(content.signature, limit),
            quoted_content=_clip(content.quoted_content, limit),
            snippet=content.snippet or envelope.snippet,
            key_information=content.key_information,
            readability_score=content.readability_score,
            attachments=decoded.attachments,
            client_id=resolve_client(clients, account.email_address, headers.sender, recipients),
            received_at=received_at(envelope, headers.date_header),
            flags=EmailFlags.from_labels(
                envelope.label_ids,
                is_html=decoded.is_html,
                has_attachments=bool(decoded.attachments),
                internal_date=envelope.internal_date,
            ),
        )

    def persist(self, record: EmailRecord) -> str:
        """Insert once; afterwards only refresh labels/read/starred when they changed."""
        existing = self.records.get_flags(*record.key)
        if existing is None:
            try:
                self.records.insert(record)
                return STORED
            except StorageConflictError:
                # Lost a race with another writer; treat as present
                existing = self.records.get_flags(*record.key)
                if existing is None:
                    raise

        if existing.mutable_differs(record.flags):
            self.records.update_flags(record.account_id, record.provider_message_id, record.flags)
            return UPDATED
        return UNCHANGED

    def _persist_all(self, run: _Run) -> None:
        for record in run.records:
            try:
                outcome = self.persist(record)
            except Exception as e:
                run.fail_message(record.provider_message_id, e)
                continue
            if outcome == STORED:
                run.result.stored += 1
            elif outcome == UPDATED:
                run.result.updated += 1

    def _advance_cursor(
        self,
        run: _Run,
        previous: Optional[SyncCursor],
        listing: CandidateListing,
        started_at: datetime,
    ) -> None:
        account = run.account
        prev_synced = previous.last_synced_at if previous else None
        prev_history = previous.history_id if previous and not listing.fell_back else None
        backfill_before, skip_ids, backfill_started_at = None, (), None

        if not run.truncated and listing.strategy == SyncStrategy.BACKFILL:
            # Everything older than the backfill's first run is now stored
            last_synced_at = _latest(prev_synced, previous.backfill_started_at if previous else None)
            history_id = None
        elif not run.truncated:
            last_synced_at = _latest(prev_synced, started_at)
            history_id = listing.history_id or prev_history
        else:
            # Watermark stays put; the next runs page down from what this run reached
            last_synced_at = prev_synced
            history_id = None
            backfill_before, skip_ids, backfill_started_at = self._backfill_point(run, previous, listing, started_at)

        self.cursors.save(
            SyncCursor(
                account_id=account.account_id,
                folder=account.folder,
                last_synced_at=last_synced_at,
                last_sync_count=run.result.stored,
                history_id=history_id,
                updated_at=self._clock(),
                backfill_before=backfill_before,
                backfill_skip_ids=skip_ids,
                backfill_started_at=backfill_started_at,
            )
        )
        logger.debug(
            f"[{account.account_id}] cursor saved: last_synced_at={last_synced_at} history_id={history_id} "
            f"backfill_before={backfill_before}"
        )

    @staticmethod
    def _backfill_point(
        run: _Run, previous: Optional[SyncCursor], listing: CandidateListing, started_at: datetime
    ) -> tuple[datetime, tuple[str, ...], datetime]:
        """Resume point for a truncated run: (before, ids already taken at that second, backfill start)."""
        if listing.strategy == SyncStrategy.BACKFILL and previous is not None and previous.backfilling:
            before, skip_ids, began = previous.backfill_before, previous.backfill_skip_ids, previous.backfill_started_at
        else:
            before, skip_ids, began = started_at, (), started_at

        # History pages run oldest first, so only query listings leave a newest-first prefix
        if listing.strategy == SyncStrategy.HISTORY or not run.prefix:
            return before, skip_ids, began

        seconds = {e.id: _epoch_second(e) for e in run.prefix}
        oldest = min(seconds.values())
        reached = tuple(mid for mid, second in seconds.items() if second == oldest)
        bound = int(before.timestamp())
        if oldest < bound:
            return datetime.fromtimestamp(oldest, tz=timezone.utc), reached, began
        if oldest == bound:
            return before, tuple(dict.fromkeys([*skip_ids, *reached])), began
        return before, skip_ids, began

    def _publish(self, account: MailAccount, result: AccountSyncResult) -> None:
        if self.publisher is None:
            return
        event = SyncCompletedEvent(
            account_id=account.account_id,
            email_address=account.email_address,
            processed=result.processed,
            stored=result.stored,
            updated=result.updated,
            completed_at=result.finished_at or self._clock(),
        )
        try:
            self.publisher.publish(event)
        except Exception as e:
            logger.warning(f"[{account.account_id}] could not publish sync event: {e}")
