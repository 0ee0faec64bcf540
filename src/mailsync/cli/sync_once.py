"""One-shot mailbox sync for one account or all enabled accounts."""

from __future__ import annotations

import argparse

from mailsync.domain.models import SyncStatus
from mailsync.infrastructure import get_settings
from mailsync.infrastructure.factory import build_services
from mailsync.infrastructure.log_config import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync Gmail mailboxes once")
    parser.add_argument("--account", default=None, help="Sync only this account id (default: all enabled)")
    parser.add_argument("--full", action="store_true", help="Ignore the stored cursor and list the whole folder")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)
    services = build_services(settings)

    try:
        if args.account:
            results = [services.runner.sync_account(args.account, incremental=not args.full)]
        else:
            results = services.runner.sync_all(incremental=not args.full).results
    finally:
        services.close()

    for r in results:
        print(
            f"{r.account_id}: {r.status.value} processed={r.processed} "
            f"stored={r.stored} updated={r.updated} errors={len(r.errors)}"
        )
        for error in r.errors[:5]:
            print(f"  - {error}")

    return 1 if any(r.status == SyncStatus.FAILED for r in results) else 0


if __name__ == "__main__":
    raise SystemExit(main())
