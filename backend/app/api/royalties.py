"""Royalty and revenue reporting API routes"""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.royalties import CreatorRoyaltySummary, StoreRevenueSummary
from app.services.revenue_service import calculate_revenue_split
from app.services.royalty_service import get_creator_royalty_summary, get_store_revenue_summary

router = APIRouter(prefix="/api/royalties", tags=["royalties"])


@router.get("/creators/{creator_id}", response_model=CreatorRoyaltySummary)
def creator_royalties(
    creator_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db)
):
    """Royalties earned by a creator and the transfers that paid them"""
    return get_creator_royalty_summary(db, creator_id, start=start, end=end)


@router.get("/stores/{store_id}", response_model=StoreRevenueSummary)
def store_revenue(
    store_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db)
):
    """Revenue transferred to a store owner"""
    return get_store_revenue_summary(db, store_id, start=start, end=end)


@router.get("/products/{product_id}/split")
def product_revenue_split(
    product_id: str,
    sale_price_cents: int = Query(..., ge=0),
    db: Session = Depends(get_db)
):
    """How a sale at the given price would be split"""
    try:
        return calculate_revenue_split(db, product_id, sale_price_cents)
    except ValueError as e:
        raise HTTPException(404, str(e))
