"""Pydantic schemas for royalty and revenue reporting"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class RoyaltyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    creator_id: str
    amount_cents: int
    status: str
    created_at: datetime


class TransferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    order_item_id: Optional[str] = None
    external_transfer_id: Optional[str] = None
    recipient_type: str
    creator_id: Optional[str] = None
    store_id: Optional[str] = None
    amount_cents: int
    status: str
    failure_reason: Optional[str] = None
    created_at: datetime


class CreatorRoyaltySummary(BaseModel):
    total_earned: int
    total_paid: int
    total_pending: int
    total_failed: int
    untransferred: int
    royalties: List[RoyaltyResponse]
    transfers: List[TransferResponse]


class StoreRevenueSummary(BaseModel):
    total_revenue: int
    total_paid: int
    total_pending: int
    total_failed: int
    transfers: List[TransferResponse]
