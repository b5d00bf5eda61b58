"""Webhook retry scheduler - re-attempts failed events with backoff

There is no in-process "already running" flag: every candidate is claimed
with a conditional UPDATE (failed -> processing) before work starts, so
overlapping runs and multiple instances skip each other's events.
"""
import asyncio
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.metrics import webhook_retry_runs_counter, update_dead_letter_queue_gauge
from app.db.session import SessionLocal
from app.models.enums import WebhookStatus
from app.services.webhook_service import get_retryable_webhooks, process_event, recover_stale_events

retry_logger = logging.getLogger("webhooks.retry")


def process_retryable_webhooks(
    limit: Optional[int] = None,
    respect_backoff: bool = True,
    db: Session = None
) -> Dict[str, int]:
    """Run one scheduler tick. Returns {processed, succeeded, failed, skipped}.

    Args:
        limit: Max events to attempt (default WEBHOOK_RETRY_BATCH_SIZE)
        respect_backoff: False retries every eligible event immediately
        db: Database session (if None, creates its own)
    """
    should_close = False
    if db is None:
        db = SessionLocal()
        should_close = True

    results = {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0}
    try:
        recovered = recover_stale_events(db)
        if recovered:
            retry_logger.info(f"Recovered {recovered} stale event(s) before retrying")

        candidates = get_retryable_webhooks(db, limit=limit, respect_backoff=respect_backoff)
        candidate_ids = [event.id for event in candidates]
        if candidate_ids:
            retry_logger.info(f"Processing {len(candidate_ids)} retryable webhook(s)")

        for event_id in candidate_ids:
            outcome = process_event(db, event_id, WebhookStatus.FAILED)
            if outcome.status == "skipped":
                results["skipped"] += 1
                continue
            results["processed"] += 1
            if outcome.succeeded:
                results["succeeded"] += 1
            else:
                results["failed"] += 1

        update_dead_letter_queue_gauge(db)
        webhook_retry_runs_counter.labels(status="success").inc()
        if results["processed"] or results["skipped"]:
            retry_logger.info(f"Retry run complete: {results}")
        return results
    except Exception as e:
        webhook_retry_runs_counter.labels(status="failure").inc()
        retry_logger.error(f"Webhook retry run failed: {e}", exc_info=True)
        raise
    finally:
        if should_close:
            db.close()


def retry_all_webhooks(limit: Optional[int] = None, db: Session = None) -> Dict[str, int]:
    """Manual trigger: retry every eligible failed event now, ignoring backoff"""
    return process_retryable_webhooks(limit=limit, respect_backoff=False, db=db)


async def webhook_retry_task():
    """Background task that runs a retry tick every WEBHOOK_RETRY_INTERVAL_SECONDS"""
    interval = settings.WEBHOOK_RETRY_INTERVAL_SECONDS
    retry_logger.info(f"Webhook retry task started (every {interval}s)")
    while True:
        try:
            await asyncio.sleep(interval)
            await asyncio.to_thread(process_retryable_webhooks)
        except asyncio.CancelledError:
            retry_logger.info("Webhook retry task stopped")
            raise
        except Exception as e:
            retry_logger.error(f"Error in webhook retry task: {e}", exc_info=True)
