"""Admin API routes - webhook monitoring, dead letter review, manual retries"""
import logging
from datetime import datetime, timezone, timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.exceptions import EventNotFoundError, InvalidStateTransition
from app.core.security import require_admin
from app.db.session import get_db
from app.models.enums import WebhookSource
from app.schemas.webhooks import (
    DeadLetterEntryResponse, RetryOutcomeResponse, RetryRunResponse, RetryableWebhooksResponse,
    ReviewDeadLetterRequest, WebhookEventSummary, WebhookStatsResponse
)
from app.services.stripe_connect_service import sync_creator_onboarding_status
from app.services.webhook_service import (
    get_dead_letter_queue, get_recent_failures, get_retryable_webhooks, get_webhook_stats,
    mark_dead_letter_reviewed, retry_webhook
)
from app.tasks.webhook_retry import process_retryable_webhooks, retry_all_webhooks

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.get("/webhooks/stats", response_model=WebhookStatsResponse)
def webhook_stats(
    source: Optional[WebhookSource] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Webhook processing statistics (defaults to the last 24 hours)"""
    if start is None and end is None:
        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=24)
    return get_webhook_stats(db, source=source, start=start, end=end)


@router.get("/webhooks/failures", response_model=List[WebhookEventSummary])
def webhook_failures(
    limit: int = Query(50, ge=1, le=500),
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Most recently failed or dead-lettered events"""
    return get_recent_failures(db, limit=limit)


@router.get("/webhooks/dead-letter", response_model=List[DeadLetterEntryResponse])
def dead_letter_queue(
    include_reviewed: bool = True,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Dead letter queue entries with their events, newest first"""
    return get_dead_letter_queue(db, include_reviewed=include_reviewed)


@router.post("/webhooks/dead-letter/{entry_id}/review", response_model=DeadLetterEntryResponse)
def review_dead_letter(
    entry_id: str,
    request_data: Optional[ReviewDeadLetterRequest] = None,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Mark a dead letter entry as reviewed"""
    reviewed_by = (request_data.reviewed_by if request_data else None) or admin
    try:
        return mark_dead_letter_reviewed(db, entry_id, reviewed_by)
    except EventNotFoundError as e:
        raise HTTPException(404, str(e))


@router.get("/webhooks/retryable", response_model=RetryableWebhooksResponse)
def retryable_webhooks(
    limit: int = Query(10, ge=1, le=100),
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Failed events whose backoff has elapsed"""
    events = get_retryable_webhooks(db, limit=limit)
    return {"count": len(events), "events": events}


@router.post("/webhooks/retry-all", response_model=RetryRunResponse)
def retry_all(
    limit: int = Query(50, ge=1, le=500),
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Retry every eligible failed event now, ignoring backoff"""
    logger.info(f"Manual retry of all failed webhooks requested by {admin}")
    return retry_all_webhooks(limit=limit, db=db)


@router.post("/webhooks/process-retries", response_model=RetryRunResponse)
def process_retries(
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Run one retry scheduler tick (for external cron)"""
    return process_retryable_webhooks(db=db)


@router.post("/webhooks/{event_id}/retry", response_model=RetryOutcomeResponse)
def retry_single_webhook(
    event_id: str,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Retry one failed event now"""
    try:
        outcome = retry_webhook(db, event_id)
    except EventNotFoundError as e:
        raise HTTPException(404, str(e))
    except InvalidStateTransition as e:
        raise HTTPException(409, str(e))

    return {
        "event_id": outcome.event_id,
        "status": outcome.status,
        "error": outcome.error,
        "retry_after_ms": outcome.retry_after_ms,
    }


@router.post("/creators/{creator_id}/sync-onboarding")
def sync_creator_onboarding(
    creator_id: str,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Re-read a creator's Stripe Connect account and update the onboarding flag"""
    try:
        return sync_creator_onboarding_status(db, creator_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
