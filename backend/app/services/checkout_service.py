"""Checkout service - order creation and payment success handling"""
import logging
import stripe
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.enums import OrderStatus, ProductStatus
from app.models.order import Order, OrderItem
from app.models.product import Product
from app.services import watermark_service
from app.services.policy_service import CreatorLicensing, ProductPolicyCheck, validate_product_policy
from app.services.revenue_service import split

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY


@dataclass
class CheckoutItem:
    product_id: str
    quantity: int = 1


def _validate_product(product: Product):
    """Raise ValueError when a product cannot be sold right now"""
    creator = product.creator
    check = ProductPolicyCheck(
        creator_id=creator.id,
        store_owner_id=product.store.owner_id,
        generation_user_id=product.generation.user_id,
        product_type=product.product_type,
        price_cents=product.price_cents,
    )
    validation = validate_product_policy(check, CreatorLicensing.from_creator(creator))
    if not validation.is_valid:
        raise ValueError("; ".join(validation.errors))

    if not creator.stripe_account_id or not creator.stripe_onboarding_complete:
        raise ValueError(f"Creator {creator.name} has not completed payment setup")


def create_checkout_session(
    db: Session,
    items: List[CheckoutItem],
    user_id: str,
    success_url: str,
    cancel_url: str
) -> Dict[str, str]:
    """Create a PENDING order and the Stripe Checkout Session that pays for it

    Raises:
        ValueError: If a product is missing, inactive or violates licensing
    """
    if not items:
        raise ValueError("No items to check out")
    if any(item.quantity < 1 for item in items):
        raise ValueError("Quantity must be at least 1")

    product_ids = {item.product_id for item in items}
    products = {
        p.id: p for p in db.query(Product).filter(
            Product.id.in_(product_ids),
            Product.status == ProductStatus.ACTIVE.value
        ).all()
    }
    if len(products) != len(product_ids):
        raise ValueError("Some products were not found or are not available")

    for product in products.values():
        _validate_product(product)

    total_cents = 0
    platform_fee_cents = 0
    order_items = []
    line_items = []
    for item in items:
        product = products[item.product_id]
        item_total = product.price_cents * item.quantity
        shares = split(item_total, product.creator.royalty_bps, settings.PLATFORM_FEE_BPS)
        total_cents += item_total
        platform_fee_cents += shares.platform_fee

        order_items.append(OrderItem(
            product_id=product.id,
            quantity=item.quantity,
            price_cents=product.price_cents,
        ))
        line_items.append({
            "price_data": {
                "currency": settings.PAYOUT_CURRENCY,
                "product_data": {
                    "name": f"{product.product_type} - {product.creator.name}",
                    "description": f"Generated content by {product.creator.name}",
                    "images": [product.generation.image_url] if product.generation.image_url else [],
                    "metadata": {
                        "product_id": product.id,
                        "creator_id": product.creator_id,
                        "store_id": product.store_id,
                    },
                },
                "unit_amount": product.price_cents,
            },
            "quantity": item.quantity,
        })

    order = Order(
        user_id=user_id,
        status=OrderStatus.PENDING.value,
        total_cents=total_cents,
        platform_fee_cents=platform_fee_cents,
        items=order_items,
    )
    db.add(order)
    db.commit()
    db.refresh(order)

    session = stripe.checkout.Session.create(
        payment_method_types=["card"],
        line_items=line_items,
        mode="payment",
        success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=cancel_url,
        payment_intent_data={"transfer_group": order.id},
        metadata={"order_id": order.id, "user_id": user_id},
    )

    order.stripe_session_id = session.id
    db.commit()

    logger.info(f"Created checkout session {session.id} for order {order.id} ({total_cents} cents)")
    return {"session_id": session.id, "url": session.url, "order_id": order.id}


def process_payment_success(db: Session, session_id: str, payment_intent_id: Optional[str]) -> Order:
    """Move the session's order from PENDING to PAID exactly once

    The transition is a conditional UPDATE, so concurrent deliveries cannot
    both apply it. An order that is already PAID is returned unchanged.

    Raises:
        LookupError: If no order references the session
        ValueError: If the order was cancelled
    """
    order = db.query(Order).filter(Order.stripe_session_id == session_id).first()
    if not order:
        raise LookupError(f"Order not found for session {session_id}")

    rows = db.query(Order).filter(
        Order.id == order.id,
        Order.status == OrderStatus.PENDING.value
    ).update({
        Order.status: OrderStatus.PAID.value,
        Order.stripe_payment_intent_id: payment_intent_id,
        Order.paid_at: datetime.now(timezone.utc),
    }, synchronize_session=False)
    db.commit()
    db.refresh(order)

    if rows == 1:
        logger.info(f"Order {order.id} marked PAID (payment intent {payment_intent_id})")
        release_order_content(db, order)
    elif order.status == OrderStatus.CANCELLED.value:
        raise ValueError(f"Order {order.id} is cancelled")
    else:
        logger.info(f"Order {order.id} already {order.status}, payment success ignored")

    return order


def release_order_content(db: Session, order: Order) -> None:
    """Swap watermarked images for clean ones on purchased generations (best effort)"""
    for item in order.items:
        generation = item.product.generation
        if not generation or not generation.image_url:
            continue
        try:
            generation.image_url = watermark_service.remove(generation.image_url, generation.id)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to release content for generation {generation.id} on order {order.id}: {e}")
