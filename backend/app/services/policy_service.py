"""Licensing policy service - creator terms enforced on listings and prices"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.creator import Creator
from app.models.enums import ProductStatus
from app.models.product import Product

logger = logging.getLogger(__name__)


@dataclass
class PolicyValidationResult:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.is_valid = False
        self.errors.append(message)


@dataclass
class ProductPolicyCheck:
    creator_id: str
    store_owner_id: str
    generation_user_id: str
    product_type: str
    price_cents: int
    discount_bps: Optional[int] = None


@dataclass
class CreatorLicensing:
    allow_third_party_stores: bool = True
    royalty_bps: int = 1000
    min_price_cents: int = 500
    max_discount_bps: int = 2000

    @classmethod
    def from_creator(cls, creator: Creator) -> "CreatorLicensing":
        return cls(
            allow_third_party_stores=creator.allow_third_party_stores,
            royalty_bps=creator.royalty_bps,
            min_price_cents=creator.min_price_cents,
            max_discount_bps=creator.max_discount_bps,
        )


def _dollars(cents: int) -> str:
    return f"${cents / 100:.2f}"


def _percent(bps: int) -> str:
    return f"{bps / 100:g}%"


def validate_product_policy(check: ProductPolicyCheck, licensing: CreatorLicensing) -> PolicyValidationResult:
    """Validate a listing against the creator's licensing terms"""
    result = PolicyValidationResult()

    if not licensing.allow_third_party_stores and check.store_owner_id != check.generation_user_id:
        result.add_error("Creator does not allow third-party store listings")
        return result

    if check.price_cents < licensing.min_price_cents:
        result.add_error(
            f"Price {_dollars(check.price_cents)} is below creator's minimum of {_dollars(licensing.min_price_cents)}"
        )

    if check.discount_bps:
        if check.discount_bps > licensing.max_discount_bps:
            result.add_error(
                f"Discount {_percent(check.discount_bps)} exceeds creator's maximum of {_percent(licensing.max_discount_bps)}"
            )

        # Compare in cents * 10000 to stay in integers
        discounted_scaled = check.price_cents * (10000 - check.discount_bps)
        if discounted_scaled < licensing.min_price_cents * 10000:
            result.add_error(
                f"Price after discount ({_dollars(discounted_scaled // 10000)}) is below creator's minimum "
                f"of {_dollars(licensing.min_price_cents)}"
            )

    if licensing.royalty_bps > 2500:
        result.warnings.append(
            f"High royalty rate ({_percent(licensing.royalty_bps)}) may reduce store owner profit margins"
        )
    if licensing.min_price_cents > 2000:
        result.warnings.append(
            f"High minimum price ({_dollars(licensing.min_price_cents)}) may limit market appeal"
        )

    return result


def check_product_policy(db: Session, check: ProductPolicyCheck) -> PolicyValidationResult:
    """Load the creator's terms and validate the listing"""
    creator = db.query(Creator).filter(Creator.id == check.creator_id).first()
    if not creator:
        result = PolicyValidationResult()
        result.add_error("Creator not found")
        return result
    return validate_product_policy(check, CreatorLicensing.from_creator(creator))


def validate_creator_licensing(royalty_bps: int, min_price_cents: int, max_discount_bps: int) -> PolicyValidationResult:
    """Validate licensing terms a creator wants to set"""
    result = PolicyValidationResult()

    if royalty_bps < 100:
        result.add_error("Royalty rate must be at least 1%")
    if royalty_bps > 5000:
        result.add_error("Royalty rate cannot exceed 50%")

    if min_price_cents < 100:
        result.add_error("Minimum price must be at least $1.00")
    if min_price_cents > 50000:
        result.add_error("Minimum price cannot exceed $500.00")

    if max_discount_bps < 0:
        result.add_error("Maximum discount cannot be negative")
    if max_discount_bps > 7500:
        result.add_error("Maximum discount cannot exceed 75%")

    if royalty_bps > 3000:
        result.warnings.append("High royalty rates may discourage store owners from listing your products")
    if min_price_cents > 5000:
        result.warnings.append("High minimum prices may limit product accessibility")
    if max_discount_bps > 5000:
        result.warnings.append("High maximum discounts may devalue your brand")

    return result


def _get_creator(db: Session, creator_id: str) -> Creator:
    creator = db.query(Creator).filter(Creator.id == creator_id).first()
    if not creator:
        raise ValueError("Creator not found")
    return creator


def _check_for_product(product: Product) -> ProductPolicyCheck:
    return ProductPolicyCheck(
        creator_id=product.creator_id,
        store_owner_id=product.store.owner_id,
        generation_user_id=product.generation.user_id,
        product_type=product.product_type,
        price_cents=product.price_cents,
    )


def get_creator_policy_report(db: Session, creator_id: str) -> Dict[str, Any]:
    """Summary of a creator's listings and whether they comply with current terms"""
    creator = _get_creator(db, creator_id)
    products = db.query(Product).filter(Product.creator_id == creator_id).all()
    prices = [p.price_cents for p in products]

    own = [p for p in products if p.store.owner_id == creator_id]

    return {
        "creator": {
            "id": creator.id,
            "name": creator.name,
            "licensing": {
                "allow_third_party_stores": creator.allow_third_party_stores,
                "royalty_bps": creator.royalty_bps,
                "min_price_cents": creator.min_price_cents,
                "max_discount_bps": creator.max_discount_bps,
            },
        },
        "products": {
            "total": len(products),
            "by_store_type": {
                "own_stores": len(own),
                "third_party_stores": len(products) - len(own),
            },
            "price_distribution": {
                "min": min(prices) if prices else None,
                "max": max(prices) if prices else None,
                "avg": sum(prices) // len(prices) if prices else None,
            },
        },
        "compliance": {
            "all_products_above_min_price": all(p >= creator.min_price_cents for p in prices),
            "third_party_compliance": creator.allow_third_party_stores or len(own) == len(products),
        },
    }


def enforce_policy_on_existing_products(db: Session, creator_id: str) -> Dict[str, Any]:
    """Deactivate listings that no longer satisfy the creator's terms"""
    creator = _get_creator(db, creator_id)
    licensing = CreatorLicensing.from_creator(creator)
    products = db.query(Product).filter(
        Product.creator_id == creator_id,
        Product.status == ProductStatus.ACTIVE.value
    ).all()

    violations = []
    for product in products:
        validation = validate_product_policy(_check_for_product(product), licensing)
        if not validation.is_valid:
            violations.append({
                "product_id": product.id,
                "store_name": product.store.name,
                "errors": validation.errors,
            })
            product.status = ProductStatus.INACTIVE.value

    db.commit()
    if violations:
        logger.warning(f"Deactivated {len(violations)} non-compliant product(s) for creator {creator_id}")

    return {
        "violations_found": len(violations),
        "violations": violations,
        "products_deactivated": len(violations),
    }
