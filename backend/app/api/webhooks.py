"""Webhook ingress routes for Stripe, FAL and Replicate"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.logging import webhook_logger
from app.db.session import get_db
from app.models.enums import WebhookSource, WebhookStatus
from app.services.webhook_processors import EXTERNAL_ID_EXTRACTORS
from app.services.webhook_service import ingest_webhook
from app.services.webhook_signatures import get_webhook_secret, validate_signature

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


async def _receive_webhook(
    request: Request,
    db: Session,
    source: WebhookSource,
    signature_header: str,
    event_type_of: Callable[[Dict[str, Any]], Optional[str]]
) -> Dict[str, Any]:
    """Verify, log and process one delivery

    The body is read as raw bytes because the signature covers the exact bytes
    sent. Logging and processing run in the threadpool so a slow provider call
    does not stall other requests.
    """
    body = await request.body()
    signature = request.headers.get(signature_header)

    secret = get_webhook_secret(source)
    if not secret:
        webhook_logger.error(f"{source.value} webhook secret not configured - rejecting delivery")
        raise HTTPException(500, "Webhook secret not configured")

    validation = validate_signature(source, body, signature, secret)
    if not validation.is_valid:
        webhook_logger.warning(f"{source.value} webhook signature validation failed: {validation.error}")
        raise HTTPException(400, validation.error or "Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(400, "Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(400, "Invalid JSON payload")

    event_type = event_type_of(payload)
    if not event_type:
        raise HTTPException(400, "Missing event type")

    # Processors block on the DB session, Stripe and outbound HTTP
    outcome = await run_in_threadpool(
        ingest_webhook,
        db,
        source,
        event_type,
        payload,
        signature,
        EXTERNAL_ID_EXTRACTORS[source](payload),
    )

    if outcome.duplicate or outcome.status == "skipped":
        status = outcome.status if outcome.duplicate else "in_progress"
        return {"received": True, "event_id": outcome.event_id, "status": status}
    if outcome.status == WebhookStatus.COMPLETED.value:
        return {"received": True, "event_id": outcome.event_id, "status": "processed"}
    if outcome.validation_error:
        raise HTTPException(400, outcome.error)

    # Recorded as failed; the retry scheduler owns it from here
    raise HTTPException(500, "Webhook processing failed")


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Stripe payment, transfer and Connect account events"""
    return await _receive_webhook(
        request, db, WebhookSource.STRIPE, "Stripe-Signature",
        lambda payload: payload.get("type")
    )


@router.post("/fal")
async def fal_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle FAL LoRA training updates"""
    return await _receive_webhook(
        request, db, WebhookSource.FAL, "X-Fal-Signature",
        lambda payload: payload.get("event_type") or "training_update"
    )


@router.get("/fal")
def fal_webhook_verification(challenge: Optional[str] = None):
    """Endpoint verification: echo the challenge back"""
    if challenge:
        return {"challenge": challenge}
    return {
        "message": "FAL webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/replicate")
async def replicate_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Replicate prediction updates"""
    return await _receive_webhook(
        request, db, WebhookSource.REPLICATE, "Replicate-Signature",
        lambda payload: "prediction_update"
    )
