"""Revenue split calculator - integer cents, basis-point rates"""
import logging
from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.product import Product

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class RevenueSplit:
    creator_royalty: int
    platform_fee: int
    store_revenue: int

    @property
    def total(self) -> int:
        return self.creator_royalty + self.platform_fee + self.store_revenue


def _clamp_bps(bps: int) -> int:
    return max(0, min(BPS_DENOMINATOR, int(bps)))


def split(item_total_cents: int, royalty_bps: int, platform_fee_bps: int) -> RevenueSplit:
    """Split a line item total between creator, platform and store

    Each share is floored; the store takes the remainder, so the three parts
    always sum to the total and none is negative.
    """
    if item_total_cents < 0:
        raise ValueError("Item total cannot be negative")

    royalty_bps = _clamp_bps(royalty_bps)
    platform_fee_bps = _clamp_bps(platform_fee_bps)

    creator_royalty = item_total_cents * royalty_bps // BPS_DENOMINATOR
    platform_fee = min(
        item_total_cents * platform_fee_bps // BPS_DENOMINATOR,
        item_total_cents - creator_royalty
    )
    store_revenue = item_total_cents - creator_royalty - platform_fee

    return RevenueSplit(
        creator_royalty=creator_royalty,
        platform_fee=platform_fee,
        store_revenue=store_revenue,
    )


def calculate_revenue_split(db: Session, product_id: str, sale_price_cents: int) -> Dict[str, Any]:
    """Revenue split for a prospective sale of a product, with per-party percentages"""
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise ValueError("Product not found")

    result = split(sale_price_cents, product.creator.royalty_bps, settings.PLATFORM_FEE_BPS)

    def percentage(amount: int) -> float:
        return (amount / sale_price_cents) * 100 if sale_price_cents > 0 else 0.0

    return {
        "sale_price_cents": sale_price_cents,
        "platform_fee": result.platform_fee,
        "creator_royalty": result.creator_royalty,
        "store_revenue": result.store_revenue,
        "splits": {
            "platform": {
                "amount": result.platform_fee,
                "percentage": percentage(result.platform_fee),
            },
            "creator": {
                "id": product.creator.id,
                "name": product.creator.name,
                "amount": result.creator_royalty,
                "percentage": percentage(result.creator_royalty),
            },
            "store": {
                "id": product.store.id,
                "name": product.store.name,
                "amount": result.store_revenue,
                "percentage": percentage(result.store_revenue),
            },
        },
    }
