"""Stripe Connect client - transfers and connected account status"""
import logging
import stripe
from typing import Dict, Optional, Any
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.creator import Creator
from app.models.store import Store

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY


def _get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    if hasattr(obj, key):
        value = getattr(obj, key, default)
        if value is not None:
            return value
    if isinstance(obj, dict):
        return obj.get(key, default)
    return default


def create_transfer(
    amount_cents: int,
    destination_account_id: str,
    group_id: str,
    idempotency_key: str,
    metadata: Optional[Dict[str, str]] = None
) -> str:
    """Create a Connect transfer and return its Stripe id

    The idempotency key makes a repeated call with the same key return the
    original transfer instead of moving money twice.

    Raises:
        ValueError: If the amount is not positive
        stripe.error.StripeError: On any Stripe failure
    """
    if amount_cents <= 0:
        raise ValueError("Transfer amount must be positive")

    transfer = stripe.Transfer.create(
        amount=amount_cents,
        currency=settings.PAYOUT_CURRENCY,
        destination=destination_account_id,
        transfer_group=group_id,
        metadata=metadata or {},
        idempotency_key=idempotency_key,
    )
    transfer_id = _get_stripe_value(transfer, 'id')
    logger.info(f"Created transfer {transfer_id} of {amount_cents} cents to {destination_account_id} (group {group_id})")
    return transfer_id


def retrieve_account_status(account_id: str) -> Dict[str, bool]:
    """Fetch the capability flags of a connected account"""
    account = stripe.Account.retrieve(account_id)
    return {
        "charges_enabled": bool(_get_stripe_value(account, 'charges_enabled', False)),
        "payouts_enabled": bool(_get_stripe_value(account, 'payouts_enabled', False)),
        "details_submitted": bool(_get_stripe_value(account, 'details_submitted', False)),
    }


def is_onboarding_complete(status: Dict[str, Any]) -> bool:
    """An account can receive transfers once all three capability flags are set"""
    return bool(
        status.get("charges_enabled")
        and status.get("payouts_enabled")
        and status.get("details_submitted")
    )


def apply_account_status(db: Session, account_id: str, status: Dict[str, Any]) -> int:
    """Set the onboarding flag on every creator and store that owns the account. Returns rows touched."""
    complete = is_onboarding_complete(status)
    updated = 0

    for creator in db.query(Creator).filter(Creator.stripe_account_id == account_id).all():
        creator.stripe_onboarding_complete = complete
        updated += 1
    for store in db.query(Store).filter(Store.stripe_account_id == account_id).all():
        store.stripe_onboarding_complete = complete
        updated += 1

    db.commit()
    if updated:
        logger.info(f"Account {account_id} onboarding_complete={complete} applied to {updated} record(s)")
    else:
        logger.warning(f"account.updated for {account_id} matched no creator or store")
    return updated


def sync_creator_onboarding_status(db: Session, creator_id: str) -> Dict[str, Any]:
    """Re-read the creator's connected account from Stripe and store the onboarding flag"""
    creator = db.query(Creator).filter(Creator.id == creator_id).first()
    if not creator:
        raise ValueError("Creator not found")
    if not creator.stripe_account_id:
        raise ValueError("Creator has no connected Stripe account")

    status = retrieve_account_status(creator.stripe_account_id)
    creator.stripe_onboarding_complete = is_onboarding_complete(status)
    db.commit()
    db.refresh(creator)

    return {
        "creator_id": creator.id,
        "stripe_account_id": creator.stripe_account_id,
        "onboarding_complete": creator.stripe_onboarding_complete,
        **status,
    }
