"""Store model"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from app.models.base import Base


class Store(Base):
    """Storefront that lists products built from creator generations"""
    __tablename__ = "stores"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255), nullable=False)
    owner_id = Column(String(36), nullable=False, index=True)
    stripe_account_id = Column(String(255), nullable=True, index=True)
    stripe_onboarding_complete = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    products = relationship("Product", back_populates="store")
