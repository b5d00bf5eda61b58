"""Status and source enums shared by models, services and schemas

Columns store the enum ``.value`` as a plain string.
"""
from enum import Enum


class WebhookSource(str, Enum):
    STRIPE = "STRIPE"  # payment processor
    FAL = "FAL"  # LoRA training provider
    REPLICATE = "REPLICATE"  # image generation provider


class WebhookStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


class CreatorStatus(str, Enum):
    PENDING = "PENDING"
    TRAINING = "TRAINING"
    READY = "READY"
    FAILED = "FAILED"


class GenerationStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class RoyaltyStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RecipientType(str, Enum):
    CREATOR = "CREATOR"
    STORE_OWNER = "STORE_OWNER"
