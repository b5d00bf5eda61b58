"""Royalty service - per-order revenue distribution and Connect transfers"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import PayoutError
from app.core.logging import payout_logger
from app.core.metrics import payout_transfers_counter
from app.models.enums import OrderStatus, RecipientType, RoyaltyStatus, TransferStatus
from app.models.order import Order, OrderItem
from app.models.royalty import Royalty
from app.models.transfer import Transfer
from app.services import stripe_connect_service
from app.services.revenue_service import split

logger = logging.getLogger(__name__)

# Stripe transfer webhook status -> Transfer.status
TRANSFER_STATUS_MAP = {
    "paid": TransferStatus.COMPLETED,
    "failed": TransferStatus.FAILED,
    "reversed": TransferStatus.FAILED,
}

LEG_NAMES = {
    RecipientType.CREATOR: "creator",
    RecipientType.STORE_OWNER: "store",
}


def _can_receive(account_id: Optional[str], onboarding_complete: bool, amount_cents: int) -> bool:
    return bool(account_id) and bool(onboarding_complete) and amount_cents >= settings.MIN_TRANSFER_AMOUNT_CENTS


def _get_or_create_royalty(db: Session, order: Order, item: OrderItem, creator_id: str, amount_cents: int) -> Royalty:
    royalty = db.query(Royalty).filter(Royalty.order_item_id == item.id).first()
    if royalty:
        return royalty

    royalty = Royalty(
        order_id=order.id,
        order_item_id=item.id,
        creator_id=creator_id,
        amount_cents=amount_cents,
        status=RoyaltyStatus.PENDING.value,
    )
    db.add(royalty)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent run recorded it first
        db.rollback()
        royalty = db.query(Royalty).filter(Royalty.order_item_id == item.id).one()
    return royalty


def _claim_leg(
    db: Session,
    order: Order,
    item: OrderItem,
    recipient_type: RecipientType,
    amount_cents: int,
    creator_id: Optional[str] = None,
    store_id: Optional[str] = None
) -> Optional[Transfer]:
    """Claim a payout leg for this run

    Returns the Transfer row to pay, or None when the leg is already paid or in
    flight. A new leg is claimed by inserting its row (unique per item and
    recipient); a leg whose transfer could not be created is re-claimed with a
    conditional FAILED -> PENDING update, as is a PENDING leg left behind by a
    run that stopped before Stripe answered. Legs that Stripe itself reported
    as failed keep their external id and are not re-issued here.
    """
    transfer = db.query(Transfer).filter(
        Transfer.order_item_id == item.id,
        Transfer.recipient_type == recipient_type.value
    ).first()

    if transfer is None:
        transfer = Transfer(
            order_id=order.id,
            order_item_id=item.id,
            recipient_type=recipient_type.value,
            creator_id=creator_id,
            store_id=store_id,
            amount_cents=amount_cents,
            status=TransferStatus.PENDING.value,
        )
        db.add(transfer)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return None
        return transfer

    if transfer.external_transfer_id:
        return None

    now = datetime.now(timezone.utc)
    if transfer.status == TransferStatus.FAILED.value:
        reclaimable = Transfer.status == TransferStatus.FAILED.value
    elif transfer.status == TransferStatus.PENDING.value:
        # Claimed by a run that died before Stripe answered
        cutoff = now - timedelta(seconds=settings.WEBHOOK_STALE_AFTER_SECONDS)
        reclaimable = and_(Transfer.status == TransferStatus.PENDING.value, Transfer.updated_at <= cutoff)
    else:
        return None

    rows = db.query(Transfer).filter(
        Transfer.id == transfer.id,
        Transfer.external_transfer_id.is_(None),
        reclaimable
    ).update({
        Transfer.status: TransferStatus.PENDING.value,
        Transfer.failure_reason: None,
        Transfer.updated_at: now,
    }, synchronize_session=False)
    db.commit()
    if rows != 1:
        return None
    db.refresh(transfer)
    payout_logger.info(f"Re-attempting {LEG_NAMES[recipient_type]} transfer for order {order.id} item {item.id}")
    return transfer


def _pay_leg(db: Session, order: Order, item: OrderItem, transfer: Transfer, destination_account_id: str) -> None:
    """Create the Stripe transfer for a claimed leg

    On failure the row is left FAILED with the error as failure_reason and the
    exception is re-raised. The idempotency key is the same on every attempt,
    so a retry after an ambiguous failure cannot pay twice.
    """
    recipient_type = RecipientType(transfer.recipient_type)
    leg = LEG_NAMES[recipient_type]
    metadata = {
        "order_id": order.id,
        "order_item_id": item.id,
        "type": "creator_royalty" if recipient_type == RecipientType.CREATOR else "store_revenue",
    }
    if transfer.creator_id:
        metadata["creator_id"] = transfer.creator_id
    if transfer.store_id:
        metadata["store_id"] = transfer.store_id

    try:
        external_transfer_id = stripe_connect_service.create_transfer(
            amount_cents=transfer.amount_cents,
            destination_account_id=destination_account_id,
            group_id=order.id,
            idempotency_key=f"{order.id}-{item.id}-{leg}",
            metadata=metadata,
        )
    except Exception as e:
        db.rollback()
        transfer.status = TransferStatus.FAILED.value
        transfer.failure_reason = str(e) or e.__class__.__name__
        db.commit()
        payout_transfers_counter.labels(recipient_type=recipient_type.value, status="failed").inc()
        raise

    transfer.external_transfer_id = external_transfer_id
    transfer.status = TransferStatus.PROCESSING.value
    db.commit()
    payout_transfers_counter.labels(recipient_type=recipient_type.value, status="created").inc()


def process_order_royalties(db: Session, order_id: str) -> None:
    """Record royalties and pay out creator and store shares for a PAID order

    Safe to call on every delivery and retry: each item gets one Royalty, and
    each payout leg one Transfer row. Legs that are in flight or paid are
    skipped; legs whose transfer could not be created are attempted again.
    A failed leg is stored as a FAILED Transfer (and a FAILED Royalty for the
    creator leg), the remaining legs are still attempted, and PayoutError is
    raised at the end so the event is retried. The order stays PAID.

    Raises:
        ValueError: If the order does not exist or is not PAID
        PayoutError: If one or more transfers could not be created
    """
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise ValueError("Order not found")
    if order.status != OrderStatus.PAID.value:
        raise ValueError("Order is not paid")

    failed_legs: List[Dict[str, Any]] = []
    attempted = 0

    for item in order.items:
        product = item.product
        creator = product.creator
        store = product.store
        item_total = item.price_cents * item.quantity
        shares = split(item_total, creator.royalty_bps, settings.PLATFORM_FEE_BPS)

        royalty = _get_or_create_royalty(db, order, item, creator.id, shares.creator_royalty)

        # Creator leg
        if _can_receive(creator.stripe_account_id, creator.stripe_onboarding_complete, shares.creator_royalty):
            transfer = _claim_leg(
                db, order, item, RecipientType.CREATOR, shares.creator_royalty, creator_id=creator.id
            )
            if transfer:
                attempted += 1
                try:
                    _pay_leg(db, order, item, transfer, creator.stripe_account_id)
                    royalty.status = RoyaltyStatus.PAID.value
                    db.commit()
                except Exception as e:
                    royalty.status = RoyaltyStatus.FAILED.value
                    db.commit()
                    payout_logger.error(
                        f"Failed to create creator transfer for order {order.id} item {item.id} "
                        f"(creator {creator.id}): {e}", exc_info=True
                    )
                    failed_legs.append({"order_item_id": item.id, "recipient_type": RecipientType.CREATOR.value, "error": str(e)})
        elif shares.creator_royalty > 0 and royalty.status == RoyaltyStatus.PENDING.value:
            # TODO: accumulate sub-threshold and not-yet-onboarded royalties into a later batch payout
            payout_logger.warning(
                f"Royalty {royalty.id} of {shares.creator_royalty} cents for creator {creator.id} left PENDING "
                f"(onboarded={bool(creator.stripe_onboarding_complete)}, "
                f"minimum={settings.MIN_TRANSFER_AMOUNT_CENTS})"
            )

        # Store owner leg
        if _can_receive(store.stripe_account_id, store.stripe_onboarding_complete, shares.store_revenue):
            transfer = _claim_leg(
                db, order, item, RecipientType.STORE_OWNER, shares.store_revenue, store_id=store.id
            )
            if transfer:
                attempted += 1
                try:
                    _pay_leg(db, order, item, transfer, store.stripe_account_id)
                except Exception as e:
                    payout_logger.error(
                        f"Failed to create store transfer for order {order.id} item {item.id} "
                        f"(store {store.id}): {e}", exc_info=True
                    )
                    failed_legs.append({"order_item_id": item.id, "recipient_type": RecipientType.STORE_OWNER.value, "error": str(e)})
        elif shares.store_revenue > 0:
            payout_logger.warning(
                f"Store revenue of {shares.store_revenue} cents for store {store.id} on order {order.id} not transferred "
                f"(onboarded={bool(store.stripe_onboarding_complete)}, "
                f"minimum={settings.MIN_TRANSFER_AMOUNT_CENTS})"
            )

    if failed_legs:
        raise PayoutError(
            f"{len(failed_legs)} payout transfer(s) failed for order {order_id}",
            failed_legs=failed_legs,
        )

    if attempted:
        payout_logger.info(f"Processed royalties for order {order_id} ({attempted} transfer(s) created)")
    else:
        payout_logger.info(f"No outstanding payout legs for order {order_id}")


def handle_transfer_update(db: Session, external_transfer_id: str, status: str) -> Optional[Transfer]:
    """Apply a Stripe transfer status to the local Transfer row. Unknown transfers are ignored."""
    transfer = db.query(Transfer).filter(Transfer.external_transfer_id == external_transfer_id).first()
    if not transfer:
        payout_logger.info(f"Transfer {external_transfer_id} not found in database")
        return None

    new_status = TRANSFER_STATUS_MAP.get(status, TransferStatus.PROCESSING)
    transfer.status = new_status.value
    if new_status == TransferStatus.FAILED:
        transfer.failure_reason = f"Stripe reported transfer {status}"
    db.commit()
    db.refresh(transfer)

    payout_transfers_counter.labels(recipient_type=transfer.recipient_type, status=new_status.value.lower()).inc()
    payout_logger.info(f"Updated transfer {external_transfer_id} status to {new_status.value}")
    return transfer


def _in_range(query, column, start: Optional[datetime], end: Optional[datetime]):
    if start:
        query = query.filter(column >= start)
    if end:
        query = query.filter(column <= end)
    return query


def _sum_by_status(transfers: List[Transfer], statuses) -> int:
    wanted = {s.value for s in statuses}
    return sum(t.amount_cents for t in transfers if t.status in wanted)


def get_creator_royalty_summary(
    db: Session,
    creator_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> Dict[str, Any]:
    """Earned vs paid vs in-flight royalties for a creator"""
    royalties = _in_range(
        db.query(Royalty).filter(Royalty.creator_id == creator_id), Royalty.created_at, start, end
    ).order_by(Royalty.created_at.desc()).all()
    transfers = _in_range(
        db.query(Transfer).filter(Transfer.creator_id == creator_id), Transfer.created_at, start, end
    ).order_by(Transfer.created_at.desc()).all()

    return {
        "total_earned": sum(r.amount_cents for r in royalties),
        "total_paid": _sum_by_status(transfers, [TransferStatus.COMPLETED]),
        "total_pending": _sum_by_status(transfers, [TransferStatus.PENDING, TransferStatus.PROCESSING]),
        "total_failed": _sum_by_status(transfers, [TransferStatus.FAILED]),
        "untransferred": sum(r.amount_cents for r in royalties if r.status == RoyaltyStatus.PENDING.value),
        "royalties": royalties,
        "transfers": transfers,
    }


def get_store_revenue_summary(
    db: Session,
    store_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> Dict[str, Any]:
    """Transferred store revenue, split by transfer status"""
    transfers = _in_range(
        db.query(Transfer).filter(Transfer.store_id == store_id), Transfer.created_at, start, end
    ).order_by(Transfer.created_at.desc()).all()

    return {
        "total_revenue": sum(t.amount_cents for t in transfers),
        "total_paid": _sum_by_status(transfers, [TransferStatus.COMPLETED]),
        "total_pending": _sum_by_status(transfers, [TransferStatus.PENDING, TransferStatus.PROCESSING]),
        "total_failed": _sum_by_status(transfers, [TransferStatus.FAILED]),
        "transfers": transfers,
    }
