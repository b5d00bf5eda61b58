"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base
from app.models.webhook_event import WebhookEvent, DeadLetterEntry
from app.models.creator import Creator
from app.models.store import Store
from app.models.generation import Generation
from app.models.product import Product
from app.models.order import Order, OrderItem
from app.models.royalty import Royalty
from app.models.transfer import Transfer

# Export all for convenience
__all__ = [
    "Base", "WebhookEvent", "DeadLetterEntry", "Creator", "Store",
    "Generation", "Product", "Order", "OrderItem", "Royalty", "Transfer"
]
