"""Watermark service client"""
import logging
import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


def _call(action: str, image_url: str, content_id: str) -> str:
    if not settings.WATERMARK_SERVICE_URL:
        raise ValueError("WATERMARK_SERVICE_URL is not configured")

    response = httpx.post(
        f"{settings.WATERMARK_SERVICE_URL.rstrip('/')}/{action}",
        json={
            "image_url": image_url,
            "content_id": content_id,
            "text": settings.WATERMARK_TEXT,
        },
        timeout=settings.EXTERNAL_HTTP_TIMEOUT_SECONDS,
    )
    response.raise_for_status()

    url = response.json().get("url")
    if not url:
        raise ValueError(f"Watermark service returned no url for {action} on {content_id}")
    return url


def apply(image_url: str, content_id: str) -> str:
    """Return the URL of a watermarked copy of the image"""
    url = _call("apply", image_url, content_id)
    logger.info(f"Watermark applied to {content_id}")
    return url


def remove(image_url: str, content_id: str) -> str:
    """Return the URL of the clean (purchased) image"""
    url = _call("remove", image_url, content_id)
    logger.info(f"Watermark removed from {content_id}")
    return url
