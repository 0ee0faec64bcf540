"""
API routes for triggering mailbox syncs.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from pydantic import BaseModel

from mailsync.domain.models import AccountSyncResult, SyncRunSummary
from mailsync.infrastructure.factory import MailsyncServices

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    storage: str


# ============================================================================
# Dependencies
# ============================================================================


def get_services(request: Request) -> MailsyncServices:
    return request.app.state.services


# ============================================================================
# Health Endpoints
# ============================================================================


@router.get("/health", response_model=HealthResponse, tags=["health"])
def health_check(services: MailsyncServices = Depends(get_services)) -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=services.settings.app_version,
        storage=services.settings.storage_backend,
    )


# ============================================================================
# Sync Endpoints
# ============================================================================


@router.post("/sync/accounts/{account_id}", response_model=AccountSyncResult, tags=["sync"])
def sync_account(
    account_id: str,
    full: bool = False,
    services: MailsyncServices = Depends(get_services),
) -> AccountSyncResult:
    """Sync one account now. `full=true` ignores the stored cursor."""
    if services.store.get_account(account_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown account {account_id}")

    logger.info(f"Sync requested for {account_id} (full={full})")
    return services.runner.sync_account(account_id, incremental=not full)


@router.post("/sync/run", response_model=SyncRunSummary, tags=["sync"])
def sync_all(full: bool = False, services: MailsyncServices = Depends(get_services)) -> SyncRunSummary:
    """Sync every enabled account."""
    logger.info(f"Sync requested for all accounts (full={full})")
    return services.runner.sync_all(incremental=not full)
