"""Mail sync worker - polls every enabled account at a configurable interval."""

from __future__ import annotations

import signal
import time
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from mailsync.domain.models import SyncStatus
from mailsync.infrastructure import get_settings
from mailsync.infrastructure.factory import MailsyncServices, build_services
from mailsync.infrastructure.log_config import configure_logging


@dataclass
class WorkerStats:
    """Track worker statistics."""
    total_stored: int = 0
    total_updated: int = 0
    total_failures: int = 0
    last_poll: datetime | None = None
    polls_completed: int = 0
    by_account: dict[str, int] = field(default_factory=dict)


class SyncWorker:
    """
    Multi-account sync worker.

    Runs `sync_all` at a fixed interval until SIGTERM/SIGINT.
    """

    def __init__(self, services: MailsyncServices, poll_interval_minutes: int = 5):
        self.services = services
        self.poll_interval = poll_interval_minutes * 60  # Convert to seconds
        self.running = False
        self.stats = WorkerStats()

    def poll_once(self) -> None:
        """Sync all accounts once."""
        self.stats.last_poll = datetime.now()
        logger.info(f"Starting poll cycle #{self.stats.polls_completed + 1}")

        try:
            summary = self.services.runner.sync_all(incremental=True)
        except Exception as e:
            self.stats.total_failures += 1
            logger.error(f"Poll cycle failed: {e}")
        else:
            for result in summary.results:
                self.stats.total_stored += result.stored
                self.stats.total_updated += result.updated
                if result.status == SyncStatus.FAILED:
                    self.stats.total_failures += 1
                self.stats.by_account[result.account_id] = (
                    self.stats.by_account.get(result.account_id, 0) + result.stored
                )

        self.stats.polls_completed += 1
        self._log_stats()

    def _log_stats(self) -> None:
        """Log current worker statistics."""
        logger.info(
            f"Worker stats: "
            f"polls={self.stats.polls_completed}, "
            f"stored={self.stats.total_stored}, "
            f"updated={self.stats.total_updated}, "
            f"failures={self.stats.total_failures}, "
            f"by_account={self.stats.by_account}"
        )

    def _handle_shutdown(self, signum, frame) -> None:
        """Handle graceful shutdown."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False

    def run(self) -> int:
        """Run the worker loop."""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info(f"Poll interval: {self.poll_interval // 60} minutes")
        self.running = True

        # Initial poll
        self.poll_once()

        while self.running:
            logger.debug(f"Sleeping for {self.poll_interval} seconds...")

            # Sleep in small increments to respond to signals quickly
            sleep_remaining = self.poll_interval
            while sleep_remaining > 0 and self.running:
                sleep_time = min(sleep_remaining, 10)
                time.sleep(sleep_time)
                sleep_remaining -= sleep_time

            if self.running:
                self.poll_once()

        logger.info("Worker shutdown complete")
        self._log_stats()
        return 0


def main() -> int:
    """Entry point for the sync worker."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} Sync Worker")
    logger.info("=" * 60)

    try:
        services = build_services(settings)
    except Exception as e:
        logger.error(f"Failed to initialize infrastructure: {e}")
        return 1

    try:
        return SyncWorker(services, poll_interval_minutes=settings.sync_poll_minutes).run()
    finally:
        services.close()


if __name__ == "__main__":
    raise SystemExit(main())
