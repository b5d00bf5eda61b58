"""Webhook service - durable event log, retry bookkeeping, dead letter queue and monitoring

Every authenticated delivery is written to `webhook_events` before it is
processed. Status transitions are:

    pending -> processing -> completed | failed
    failed  -> processing (retry) | dead_letter (retries exhausted)

Claims are conditional UPDATEs on the status column, so any number of API
workers and retry runs can share the table without an in-process lock.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import EventNotFoundError, InvalidStateTransition, WebhookValidationError
from app.core.logging import webhook_logger
from app.core.metrics import webhook_events_processed_counter, webhook_events_received_counter
from app.models.enums import WebhookSource, WebhookStatus
from app.models.webhook_event import WebhookEvent, DeadLetterEntry

logger = logging.getLogger(__name__)

# Answer given when a provider redelivers an event we already hold
REDELIVERY_STATUSES = {
    WebhookStatus.COMPLETED.value: "already_processed",
    WebhookStatus.DEAD_LETTER.value: "dead_letter",
    WebhookStatus.FAILED.value: "retry_scheduled",
    WebhookStatus.PENDING.value: "in_progress",
    WebhookStatus.PROCESSING.value: "in_progress",
}


@dataclass(frozen=True)
class RetryDecision:
    should_retry: bool
    retry_after_ms: Optional[int] = None


@dataclass
class ProcessingOutcome:
    """Result of one processing attempt (or of a redelivery lookup)"""
    event_id: str
    status: str  # completed, failed, dead_letter, skipped, or a REDELIVERY_STATUSES value
    duplicate: bool = False
    error: Optional[str] = None
    retry_after_ms: Optional[int] = None
    validation_error: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == WebhookStatus.COMPLETED.value


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _status_value(status: Union[WebhookStatus, str]) -> str:
    return WebhookStatus(status).value


def retry_delay_ms(retry_count: int) -> int:
    """Backoff before the next attempt of an event that has failed `retry_count` times"""
    return settings.WEBHOOK_BASE_DELAY_MS * (2 ** (max(retry_count, 1) - 1))


def get_event(db: Session, event_id: str) -> WebhookEvent:
    event = db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()
    if not event:
        raise EventNotFoundError(f"Webhook event {event_id} not found")
    return event


def _find_by_external_id(db: Session, source: WebhookSource, external_id: str) -> Optional[WebhookEvent]:
    return db.query(WebhookEvent).filter(
        WebhookEvent.source == source.value,
        WebhookEvent.external_id == external_id
    ).first()


# ============================================================================
# EVENT LOG
# ============================================================================

def log_event(
    db: Session,
    source: WebhookSource,
    event_type: str,
    payload: Dict[str, Any],
    signature: Optional[str],
    external_id: Optional[str] = None
) -> Tuple[WebhookEvent, bool]:
    """Record a delivery as pending. Returns (event, created).

    A delivery whose external_id is already logged for the same source is a
    redelivery: the stored event is returned with created=False.
    """
    if external_id:
        existing = _find_by_external_id(db, source, external_id)
        if existing:
            webhook_logger.info(f"Redelivery of {source.value} {external_id} (event {existing.id}, status {existing.status})")
            return existing, False

    event = WebhookEvent(
        source=source.value,
        event_type=event_type,
        payload=payload,
        signature=signature,
        external_id=external_id,
        retry_count=0,
        status=WebhookStatus.PENDING.value,
    )
    db.add(event)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent delivery of the same external_id won the insert
        db.rollback()
        existing = _find_by_external_id(db, source, external_id) if external_id else None
        if existing is None:
            raise
        webhook_logger.info(f"Concurrent redelivery of {source.value} {external_id} resolved to event {existing.id}")
        return existing, False

    db.refresh(event)
    webhook_logger.info(f"Logged {source.value} webhook {event_type} as event {event.id}")
    return event, True


def mark_processing(
    db: Session,
    event_id: str,
    expected_status: Union[WebhookStatus, str] = WebhookStatus.PENDING
) -> bool:
    """Atomically claim an event. Only the caller whose UPDATE matched gets True."""
    rows = db.query(WebhookEvent).filter(
        WebhookEvent.id == event_id,
        WebhookEvent.status == _status_value(expected_status)
    ).update({
        WebhookEvent.status: WebhookStatus.PROCESSING.value,
        WebhookEvent.updated_at: _now(),
    }, synchronize_session=False)
    db.commit()
    return rows == 1


def mark_completed(db: Session, event_id: str) -> None:
    event = get_event(db, event_id)
    now = _now()
    event.status = WebhookStatus.COMPLETED.value
    event.error_message = None
    event.processed_at = now
    event.updated_at = now
    db.commit()


def mark_failed(db: Session, event_id: str, error: str) -> RetryDecision:
    """Record a failed attempt and decide between retry and dead letter

    retry_count is incremented once per call. When it reaches
    WEBHOOK_MAX_RETRIES the event moves to dead_letter and its
    DeadLetterEntry is written in the same commit.
    """
    event = get_event(db, event_id)
    if event.status == WebhookStatus.DEAD_LETTER.value:
        return RetryDecision(should_retry=False)

    new_retry_count = event.retry_count + 1
    event.retry_count = new_retry_count
    event.error_message = error
    event.updated_at = _now()

    if new_retry_count < settings.WEBHOOK_MAX_RETRIES:
        event.status = WebhookStatus.FAILED.value
        db.commit()
        retry_after_ms = retry_delay_ms(new_retry_count)
        webhook_logger.warning(
            f"Webhook {event_id} failed (attempt {new_retry_count}/{settings.WEBHOOK_MAX_RETRIES}), "
            f"retry after {retry_after_ms}ms: {error}"
        )
        return RetryDecision(should_retry=True, retry_after_ms=retry_after_ms)

    event.status = WebhookStatus.DEAD_LETTER.value
    if not db.query(DeadLetterEntry).filter(DeadLetterEntry.webhook_event_id == event_id).first():
        db.add(DeadLetterEntry(webhook_event_id=event_id, final_error=error))
    db.commit()
    webhook_logger.error(f"Webhook {event_id} moved to dead letter queue after {new_retry_count} attempts: {error}")
    return RetryDecision(should_retry=False)


# ============================================================================
# PROCESSING
# ============================================================================

def process_event(
    db: Session,
    event_id: str,
    expected_status: Union[WebhookStatus, str] = WebhookStatus.PENDING
) -> ProcessingOutcome:
    """Claim an event, run its processor and record the result

    Returns status "skipped" when another worker holds the claim.
    """
    from app.services.webhook_processors import PROCESSORS

    if not mark_processing(db, event_id, expected_status):
        webhook_logger.info(f"Webhook {event_id} already claimed, skipping")
        return ProcessingOutcome(event_id=event_id, status="skipped")

    event = get_event(db, event_id)
    source = WebhookSource(event.source)
    processor = PROCESSORS[source]

    try:
        processor(db, event.event_type, event.payload)
    except Exception as e:
        db.rollback()
        error = str(e) or e.__class__.__name__
        decision = mark_failed(db, event_id, error)
        status = WebhookStatus.FAILED.value if decision.should_retry else WebhookStatus.DEAD_LETTER.value
        webhook_events_processed_counter.labels(source=source.value, outcome=status).inc()
        if not isinstance(e, WebhookValidationError):
            webhook_logger.error(f"Processor error for {source.value} webhook {event_id}: {error}", exc_info=True)
        return ProcessingOutcome(
            event_id=event_id,
            status=status,
            error=error,
            retry_after_ms=decision.retry_after_ms,
            validation_error=isinstance(e, WebhookValidationError),
        )

    mark_completed(db, event_id)
    webhook_events_processed_counter.labels(source=source.value, outcome=WebhookStatus.COMPLETED.value).inc()
    webhook_logger.info(f"Processed {source.value} webhook {event.event_type} ({event_id})")
    return ProcessingOutcome(event_id=event_id, status=WebhookStatus.COMPLETED.value)


def ingest_webhook(
    db: Session,
    source: WebhookSource,
    event_type: str,
    payload: Dict[str, Any],
    signature: Optional[str],
    external_id: Optional[str] = None
) -> ProcessingOutcome:
    """Log a verified delivery and process it

    A redelivery is answered from the stored state without running the
    processor again.
    """
    event, created = log_event(db, source, event_type, payload, signature, external_id)
    webhook_events_received_counter.labels(source=source.value).inc()

    if not created:
        return ProcessingOutcome(
            event_id=event.id,
            status=REDELIVERY_STATUSES[event.status],
            duplicate=True,
        )

    return process_event(db, event.id, WebhookStatus.PENDING)


def get_retryable_webhooks(db: Session, limit: Optional[int] = None, respect_backoff: bool = True) -> List[WebhookEvent]:
    """Failed events with retries left, oldest first

    With respect_backoff, an event is only eligible once `updated_at` is older
    than the backoff implied by its retry_count.
    """
    if limit is None:
        limit = settings.WEBHOOK_RETRY_BATCH_SIZE

    query = db.query(WebhookEvent).filter(
        WebhookEvent.status == WebhookStatus.FAILED.value,
        WebhookEvent.retry_count < settings.WEBHOOK_MAX_RETRIES
    )

    if respect_backoff:
        now = _now()
        windows = [
            and_(
                WebhookEvent.retry_count == attempts,
                WebhookEvent.updated_at <= now - timedelta(milliseconds=retry_delay_ms(attempts))
            )
            for attempts in range(1, settings.WEBHOOK_MAX_RETRIES)
        ]
        if not windows:
            return []
        query = query.filter(or_(*windows))

    return query.order_by(WebhookEvent.created_at.asc()).limit(limit).all()


def recover_stale_events(db: Session, older_than_seconds: Optional[int] = None) -> int:
    """Record a failed attempt for events stuck in pending/processing

    A worker that died mid-processing leaves its event claimed forever. Each
    stale row is re-claimed with a conditional UPDATE, then failed, so it
    re-enters the normal retry path. Returns the number recovered.
    """
    if older_than_seconds is None:
        older_than_seconds = settings.WEBHOOK_STALE_AFTER_SECONDS
    cutoff = _now() - timedelta(seconds=older_than_seconds)
    stuck_statuses = [WebhookStatus.PENDING.value, WebhookStatus.PROCESSING.value]

    stale_ids = [row.id for row in db.query(WebhookEvent.id).filter(
        WebhookEvent.status.in_(stuck_statuses),
        WebhookEvent.updated_at <= cutoff
    ).all()]

    recovered = 0
    for event_id in stale_ids:
        rows = db.query(WebhookEvent).filter(
            WebhookEvent.id == event_id,
            WebhookEvent.status.in_(stuck_statuses),
            WebhookEvent.updated_at <= cutoff
        ).update({
            WebhookEvent.status: WebhookStatus.PROCESSING.value,
            WebhookEvent.updated_at: _now(),
        }, synchronize_session=False)
        db.commit()
        if rows != 1:
            continue
        mark_failed(db, event_id, "Processing interrupted")
        recovered += 1

    if recovered:
        webhook_logger.warning(f"Recovered {recovered} stale webhook event(s)")
    return recovered


def retry_webhook(db: Session, event_id: str) -> ProcessingOutcome:
    """Manually retry one failed event now, ignoring backoff"""
    event = get_event(db, event_id)
    if event.status == WebhookStatus.DEAD_LETTER.value:
        raise InvalidStateTransition("Dead-lettered events cannot be retried")
    if event.status != WebhookStatus.FAILED.value:
        raise InvalidStateTransition(f"Only failed events can be retried (current status: {event.status})")

    webhook_logger.info(f"Manual retry of webhook {event_id}")
    return process_event(db, event_id, WebhookStatus.FAILED)


# ============================================================================
# MONITORING
# ============================================================================

def get_webhook_stats(
    db: Session,
    source: Optional[WebhookSource] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> Dict[str, Any]:
    """Counts by status and success rate (percent of total that completed)"""
    query = db.query(WebhookEvent)
    if source:
        query = query.filter(WebhookEvent.source == WebhookSource(source).value)
    if start:
        query = query.filter(WebhookEvent.created_at >= start)
    if end:
        query = query.filter(WebhookEvent.created_at <= end)

    total = query.count()
    counts = {
        status.value: query.filter(WebhookEvent.status == status.value).count()
        for status in WebhookStatus
    }
    completed = counts[WebhookStatus.COMPLETED.value]

    return {
        "total": total,
        "completed": completed,
        "failed": counts[WebhookStatus.FAILED.value],
        "dead_letter": counts[WebhookStatus.DEAD_LETTER.value],
        "processing": counts[WebhookStatus.PROCESSING.value],
        "pending": counts[WebhookStatus.PENDING.value],
        "success_rate": (completed / total) * 100 if total > 0 else 0.0,
    }


def get_recent_failures(db: Session, limit: int = 50) -> List[WebhookEvent]:
    return db.query(WebhookEvent).filter(
        WebhookEvent.status.in_([WebhookStatus.FAILED.value, WebhookStatus.DEAD_LETTER.value])
    ).order_by(WebhookEvent.updated_at.desc()).limit(limit).all()


def get_dead_letter_queue(db: Session, include_reviewed: bool = True) -> List[DeadLetterEntry]:
    query = db.query(DeadLetterEntry)
    if not include_reviewed:
        query = query.filter(DeadLetterEntry.reviewed.is_(False))
    return query.order_by(DeadLetterEntry.created_at.desc()).all()


def mark_dead_letter_reviewed(db: Session, entry_id: str, reviewed_by: str) -> DeadLetterEntry:
    """Flag a dead letter entry as reviewed. The entry itself is kept."""
    entry = db.query(DeadLetterEntry).filter(DeadLetterEntry.id == entry_id).first()
    if not entry:
        raise EventNotFoundError(f"Dead letter entry {entry_id} not found")

    entry.reviewed = True
    entry.reviewed_by = reviewed_by
    entry.reviewed_at = _now()
    db.commit()
    db.refresh(entry)
    webhook_logger.info(f"Dead letter entry {entry_id} reviewed by {reviewed_by}")
    return entry
