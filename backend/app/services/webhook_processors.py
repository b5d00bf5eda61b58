"""Provider webhook processors

One processor per WebhookSource, looked up through PROCESSORS. A processor
either returns normally (the event is completed) or raises (the event is
failed and retried by the scheduler). WebhookValidationError marks a payload
that references something we cannot act on.
"""
import logging
from typing import Any, Callable, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import WebhookValidationError
from app.models.enums import CreatorStatus, GenerationStatus, WebhookSource
from app.models.generation import Generation
from app.services import checkout_service, royalty_service, stripe_connect_service, watermark_service
from app.services.creator_service import derive_trigger_word, get_creator_by_job_id, update_creator_lora_status
from app.services.storage.s3_service import get_storage_service

logger = logging.getLogger(__name__)

Processor = Callable[[Session, str, Dict[str, Any]], None]


# ============================================================================
# EXTERNAL IDS (redelivery dedupe keys)
# ============================================================================

def stripe_external_id(payload: Dict[str, Any]) -> Optional[str]:
    return payload.get("id")


def fal_external_id(payload: Dict[str, Any]) -> Optional[str]:
    request_id = payload.get("request_id")
    return f"{request_id}:{payload.get('status')}" if request_id else None


def replicate_external_id(payload: Dict[str, Any]) -> Optional[str]:
    prediction_id = payload.get("id")
    return f"{prediction_id}:{payload.get('status')}" if prediction_id else None


# ============================================================================
# FAL - LoRA training
# ============================================================================

def process_fal_webhook(db: Session, event_type: str, payload: Dict[str, Any]) -> None:
    job_id = payload.get("request_id")
    if not job_id:
        raise WebhookValidationError("Missing job ID in webhook payload")

    creator = get_creator_by_job_id(db, job_id)
    if not creator:
        raise WebhookValidationError(f"Creator not found for FAL job ID: {job_id}")

    status = payload.get("status")
    output = payload.get("output") or {}

    if status == "COMPLETED":
        lora_url = output.get("lora_url")
        if not lora_url:
            update_creator_lora_status(db, creator, CreatorStatus.FAILED)
            raise WebhookValidationError("Completed webhook missing LoRA URL")

        update_creator_lora_status(
            db, creator, CreatorStatus.READY,
            lora_url=lora_url,
            trigger_word=output.get("trigger_word") or derive_trigger_word(creator.id),
        )
        logger.info(f"LoRA training completed for creator {creator.id}")
    elif status == "FAILED":
        update_creator_lora_status(db, creator, CreatorStatus.FAILED)
        logger.error(f"LoRA training failed for creator {creator.id}: {payload.get('error')}")
    else:
        logger.info(f"FAL job {job_id} status {status} for creator {creator.id}, nothing to do")


# ============================================================================
# REPLICATE - image generation
# ============================================================================

def _download(url: str) -> bytes:
    response = httpx.get(url, timeout=settings.EXTERNAL_HTTP_TIMEOUT_SECONDS, follow_redirects=True)
    response.raise_for_status()
    return response.content


def process_replicate_webhook(db: Session, event_type: str, payload: Dict[str, Any]) -> None:
    prediction_id = payload.get("id")
    if not prediction_id:
        raise WebhookValidationError("Missing prediction ID")

    generation = db.query(Generation).filter(
        Generation.replicate_prediction_id == prediction_id,
        Generation.status == GenerationStatus.PROCESSING.value
    ).first()
    if not generation:
        logger.info(f"No matching generation found for Replicate ID: {prediction_id}")
        return

    status = payload.get("status")
    if status == "succeeded":
        output = payload.get("output")
        if isinstance(output, str):
            output = [output]
        if not output:
            raise WebhookValidationError(f"Prediction {prediction_id} succeeded without output")

        image_bytes = _download(output[0])
        storage = get_storage_service()
        stored_url = storage.put(image_bytes, f"generations/{generation.id}.jpg", "image/jpeg")
        watermarked_url = watermark_service.apply(stored_url, generation.id)

        generation.status = GenerationStatus.COMPLETED.value
        generation.image_url = watermarked_url
        db.commit()
        logger.info(f"Generation {generation.id} completed")
    elif status in ("failed", "canceled"):
        generation.status = GenerationStatus.FAILED.value
        db.commit()
        logger.info(f"Generation {generation.id} {status}: {payload.get('error')}")
    else:
        logger.info(f"Prediction {prediction_id} status {status}, nothing to do")


# ============================================================================
# STRIPE - payments, transfers, Connect accounts
# ============================================================================

def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id string or an expanded object"""
    if isinstance(value, dict):
        return value.get("id")
    return value


def handle_checkout_session_completed(db: Session, session: Dict[str, Any]) -> None:
    session_id = session.get("id")
    payment_intent_id = _object_id(session.get("payment_intent"))
    if not payment_intent_id:
        raise WebhookValidationError(f"No payment intent in checkout session {session_id}")

    try:
        order = checkout_service.process_payment_success(db, session_id, payment_intent_id)
    except LookupError as e:
        raise WebhookValidationError(str(e))

    # Each payout leg is guarded, so safe on every delivery and retry
    royalty_service.process_order_royalties(db, order.id)


def process_stripe_webhook(db: Session, event_type: str, payload: Dict[str, Any]) -> None:
    data_object = (payload.get("data") or {}).get("object")
    if not isinstance(data_object, dict):
        raise WebhookValidationError("Stripe event has no data.object")

    if event_type == "checkout.session.completed":
        handle_checkout_session_completed(db, data_object)
    elif event_type in ("transfer.created", "transfer.paid", "transfer.failed", "transfer.reversed"):
        royalty_service.handle_transfer_update(db, data_object.get("id"), event_type.split(".", 1)[1])
    elif event_type == "account.updated":
        stripe_connect_service.apply_account_status(db, data_object.get("id"), data_object)
    elif event_type == "payment_intent.succeeded":
        logger.info(f"Payment intent succeeded: {data_object.get('id')}")
    else:
        logger.info(f"Unhandled Stripe event type: {event_type}")


PROCESSORS: Dict[WebhookSource, Processor] = {
    WebhookSource.STRIPE: process_stripe_webhook,
    WebhookSource.FAL: process_fal_webhook,
    WebhookSource.REPLICATE: process_replicate_webhook,
}

EXTERNAL_ID_EXTRACTORS: Dict[WebhookSource, Callable[[Dict[str, Any]], Optional[str]]] = {
    WebhookSource.STRIPE: stripe_external_id,
    WebhookSource.FAL: fal_external_id,
    WebhookSource.REPLICATE: replicate_external_id,
}
