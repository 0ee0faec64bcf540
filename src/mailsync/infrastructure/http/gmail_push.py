"""Gmail push endpoint for Pub/Sub watch notifications."""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from mailsync.application.use_cases.sync_accounts import SyncAccountsUseCase

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================


class PubSubMessage(BaseModel):
    """The `message` object of a Pub/Sub push request."""

    model_config = ConfigDict(populate_by_name=True)

    data: str = ""
    message_id: str | None = Field(default=None, alias="messageId")
    publish_time: str | None = Field(default=None, alias="publishTime")


class PushRequest(BaseModel):
    """Pub/Sub push body."""

    message: PubSubMessage = Field(default_factory=PubSubMessage)
    subscription: str | None = None


@dataclass(frozen=True)
class GmailNotification:
    email_address: str
    history_id: Optional[str]


def decode_notification(data: str) -> Optional[GmailNotification]:
    """Decode `message.data` (base64 JSON with emailAddress and historyId)."""
    if not data:
        return None
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_")
        body = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Gmail push payload could not be decoded: {e}")
        return None

    email_address = body.get("emailAddress") if isinstance(body, dict) else None
    if not email_address:
        return None
    history_id = body.get("historyId")
    return GmailNotification(
        email_address=str(email_address).strip().lower(),
        history_id=str(history_id) if history_id is not None else None,
    )


# ============================================================================
# Background Task
# ============================================================================


def _sync_account(runner: SyncAccountsUseCase, account_id: str) -> None:
    """Background task running one incremental sync."""
    try:
        result = runner.sync_account(account_id, incremental=True)
        logger.info(f"Push-triggered sync for {account_id}: {result.status.value} (stored={result.stored})")
    except Exception as e:
        logger.exception(f"Push-triggered sync for {account_id} failed: {e}")


# ============================================================================
# Endpoint
# ============================================================================


@router.post("/webhooks/gmail", tags=["webhooks"])
def gmail_push(
    payload: PushRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    x_webhook_token: str = Header(default="", alias="x-webhook-token"),
) -> dict:
    """
    Receive a Gmail watch notification and schedule an incremental sync.

    Unknown mailboxes and empty payloads are acknowledged with 200 so Pub/Sub
    stops redelivering them.
    """
    services = request.app.state.services
    expected = services.settings.gmail_webhook_token
    if expected is None or not secrets.compare_digest(x_webhook_token, expected.get_secret_value()):
        logger.warning("Gmail push unauthorized attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")

    notification = decode_notification(payload.message.data)
    if notification is None:
        logger.info("Gmail push with empty payload acknowledged")
        return {"status": "ignored", "reason": "empty payload"}

    account = services.store.find_by_email(notification.email_address)
    if account is None:
        logger.info(f"Gmail push for unknown mailbox {notification.email_address} acknowledged")
        return {"status": "ignored", "reason": "unknown account"}

    background_tasks.add_task(_sync_account, services.runner, account.account_id)
    logger.info(f"Gmail push for {account.account_id} queued (historyId={notification.history_id})")
    return {
        "status": "accepted",
        "account_id": account.account_id,
        "history_id": notification.history_id,
    }
