"""WebhookEvent and DeadLetterEntry models"""
from sqlalchemy import Column, Integer, String, Boolean, Text, JSON, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from app.models.base import Base


def _uuid():
    return str(uuid4())


class WebhookEvent(Base):
    """Durable log of every authenticated webhook delivery"""
    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    source = Column(String(20), nullable=False, index=True)  # STRIPE, FAL, REPLICATE
    event_type = Column(String(100), nullable=False, index=True)
    payload = Column(JSON, nullable=False)  # Decoded body, verbatim
    signature = Column(Text, nullable=True)  # Raw signature header
    external_id = Column(String(255), nullable=True)  # Provider-side identity for redelivery dedupe
    retry_count = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed, dead_letter
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    dead_letter_entry = relationship("DeadLetterEntry", back_populates="webhook_event", uselist=False)

    __table_args__ = (
        UniqueConstraint('source', 'external_id', name='uq_webhook_events_source_external_id'),
        Index('ix_webhook_events_status_updated_at', 'status', 'updated_at'),
    )


class DeadLetterEntry(Base):
    """Webhook event that exhausted its retries. Never purged automatically."""
    __tablename__ = "dead_letter_queue"

    id = Column(String(36), primary_key=True, default=_uuid)
    webhook_event_id = Column(String(36), ForeignKey("webhook_events.id"), nullable=False, unique=True, index=True)
    final_error = Column(Text, nullable=True)
    reviewed = Column(Boolean, default=False, nullable=False)
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    webhook_event = relationship("WebhookEvent", back_populates="dead_letter_entry")
