"""Product model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from app.models.base import Base


class Product(Base):
    """Store listing of a generation"""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    store_id = Column(String(36), ForeignKey("stores.id"), nullable=False, index=True)
    generation_id = Column(String(36), ForeignKey("generations.id"), nullable=False, index=True)
    creator_id = Column(String(36), ForeignKey("creators.id"), nullable=False, index=True)
    product_type = Column(String(50), nullable=False)  # e.g. 'print', 'digital', 'shirt'
    price_cents = Column(Integer, nullable=False)
    status = Column(String(20), default="ACTIVE", nullable=False)  # ACTIVE, INACTIVE
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    store = relationship("Store", back_populates="products")
    generation = relationship("Generation")
    creator = relationship("Creator", back_populates="products")

    __table_args__ = (
        Index('ix_products_creator_status', 'creator_id', 'status'),
    )
