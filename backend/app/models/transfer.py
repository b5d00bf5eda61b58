"""Transfer model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from datetime import datetime, timezone
from uuid import uuid4
from app.models.base import Base


class Transfer(Base):
    """One payout leg (creator or store owner) of an order item

    The row is written before Stripe is called. A leg whose transfer could not
    be created stays FAILED with no external id until a retry succeeds.
    """
    __tablename__ = "transfers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id = Column(String(36), ForeignKey("order_items.id"), nullable=True, index=True)
    external_transfer_id = Column(String(255), nullable=True, unique=True, index=True)  # Stripe tr_..., set once created
    recipient_type = Column(String(20), nullable=False)  # CREATOR, STORE_OWNER
    creator_id = Column(String(36), ForeignKey("creators.id"), nullable=True, index=True)
    store_id = Column(String(36), ForeignKey("stores.id"), nullable=True, index=True)
    amount_cents = Column(Integer, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, PROCESSING, COMPLETED, FAILED
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        UniqueConstraint('order_item_id', 'recipient_type', name='uq_transfers_order_item_recipient'),
    )
