"""Generation model"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from app.models.base import Base


class Generation(Base):
    """Image generated from a creator's likeness model"""
    __tablename__ = "generations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    creator_id = Column(String(36), ForeignKey("creators.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, PROCESSING, COMPLETED, FAILED
    prompt = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)  # Watermarked until purchased
    replicate_prediction_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    creator = relationship("Creator", back_populates="generations")
