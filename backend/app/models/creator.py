"""Creator model"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from app.models.base import Base


class Creator(Base):
    """Creator with a trained likeness model and licensing terms"""
    __tablename__ = "creators"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, TRAINING, READY, FAILED
    lora_url = Column(Text, nullable=True)
    trigger_word = Column(String(100), nullable=True)
    fal_job_id = Column(String(255), nullable=True, unique=True, index=True)  # FAL training request_id
    stripe_account_id = Column(String(255), nullable=True, index=True)  # Stripe Connect account
    stripe_onboarding_complete = Column(Boolean, default=False, nullable=False)

    # Licensing configuration
    allow_third_party_stores = Column(Boolean, default=True, nullable=False)
    royalty_bps = Column(Integer, default=1000, nullable=False)  # 10%
    min_price_cents = Column(Integer, default=500, nullable=False)  # $5.00
    max_discount_bps = Column(Integer, default=2000, nullable=False)  # 20%

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    generations = relationship("Generation", back_populates="creator")
    products = relationship("Product", back_populates="creator")
