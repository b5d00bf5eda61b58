"""Pydantic schemas for licensing policy checks"""
from typing import List, Optional
from pydantic import BaseModel


class LicensingValidationRequest(BaseModel):
    """Licensing terms a creator wants to set"""
    royalty_bps: int
    min_price_cents: int
    max_discount_bps: int


class ProductPolicyRequest(BaseModel):
    """Proposed listing checked against the creator's terms"""
    creator_id: str
    store_owner_id: str
    generation_user_id: str
    product_type: str
    price_cents: int
    discount_bps: Optional[int] = None


class PolicyValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]
