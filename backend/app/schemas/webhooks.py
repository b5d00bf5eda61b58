"""Pydantic schemas for webhook monitoring and admin operations"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict


class WebhookEventSummary(BaseModel):
    """Webhook event without its payload (failure listings)"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    source: str
    event_type: str
    retry_count: int
    status: str
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class WebhookEventDetail(WebhookEventSummary):
    """Webhook event including the stored payload"""
    payload: Dict[str, Any]
    external_id: Optional[str] = None
    processed_at: Optional[datetime] = None


class DeadLetterEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    webhook_event_id: str
    final_error: Optional[str] = None
    reviewed: bool
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    webhook_event: Optional[WebhookEventDetail] = None


class WebhookStatsResponse(BaseModel):
    total: int
    completed: int
    failed: int
    dead_letter: int
    processing: int
    pending: int
    success_rate: float


class ReviewDeadLetterRequest(BaseModel):
    """Schema for marking a dead letter entry as reviewed"""
    reviewed_by: Optional[str] = None


class RetryOutcomeResponse(BaseModel):
    event_id: str
    status: str
    error: Optional[str] = None
    retry_after_ms: Optional[int] = None


class RetryRunResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    skipped: int


class RetryableWebhooksResponse(BaseModel):
    count: int
    events: List[WebhookEventSummary]
