"""Licensing policy API routes"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.security import require_admin
from app.db.session import get_db
from app.schemas.policy import LicensingValidationRequest, PolicyValidationResponse, ProductPolicyRequest
from app.services.policy_service import (
    ProductPolicyCheck, check_product_policy, enforce_policy_on_existing_products,
    get_creator_policy_report, validate_creator_licensing
)

router = APIRouter(prefix="/api/policy", tags=["policy"])


@router.post("/licensing/validate", response_model=PolicyValidationResponse)
def validate_licensing(request_data: LicensingValidationRequest):
    """Validate licensing terms before a creator saves them"""
    return validate_creator_licensing(
        request_data.royalty_bps,
        request_data.min_price_cents,
        request_data.max_discount_bps
    )


@router.post("/products/validate", response_model=PolicyValidationResponse)
def validate_product(request_data: ProductPolicyRequest, db: Session = Depends(get_db)):
    """Validate a proposed listing against the creator's licensing terms"""
    return check_product_policy(db, ProductPolicyCheck(**request_data.model_dump()))


@router.get("/creators/{creator_id}/report")
def creator_policy_report(creator_id: str, db: Session = Depends(get_db)):
    """Listing compliance report for a creator"""
    try:
        return get_creator_policy_report(db, creator_id)
    except ValueError as e:
        raise HTTPException(404, str(e))


@router.post("/creators/{creator_id}/enforce")
def enforce_creator_policy(
    creator_id: str,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Deactivate listings that violate the creator's current terms (admin only)"""
    try:
        return enforce_policy_on_existing_products(db, creator_id)
    except ValueError as e:
        raise HTTPException(404, str(e))
