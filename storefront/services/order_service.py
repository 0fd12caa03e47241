import logging
import time
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from storefront.constants.order_status import ALLOWED_TRANSITIONS, SETTLED_STATUSES, OrderStatus
from storefront.errors import InvalidStatusTransition, OrderNotFound, OrderPersistenceError
from storefront.models.order import Order
from storefront.models.order_event import OrderEventType
from storefront.models.order_item import OrderItem
from storefront.models.user import User
from storefront.schemas.checkout_schemas import PriceQuote, ShippingDetails
from storefront.services.inventory_service import restock
from storefront.services.order_event_service import log_order_event

logger = logging.getLogger(__name__)


def generate_order_number() -> str:
    """ORD-<epoch millis>-<12 random hex chars>, e.g. ORD-1760832000000-3F9A0C1B2D4E."""
    return f"ORD-{int(time.time() * 1000)}-{uuid4().hex[:12].upper()}"


def create_pending_order(
    session: Session,
    *,
    user: User,
    shipping: ShippingDetails,
    quote: PriceQuote,
) -> Order:
    """Persist the order intent before any payment attempt.

    Totals come from the quote and are never recomputed afterwards.
    """
    order = Order(
        order_number=generate_order_number(),
        user_id=user.id,
        total_amount=quote.total,
        shipping_amount=quote.shipping_fee,
        discount_amount=quote.discount,
        coupon_id=quote.coupon_id,
        status=OrderStatus.pending.value,
        customer_name=shipping.full_name,
        customer_email=shipping.email,
        customer_phone=shipping.phone,
        shipping_address=shipping.address,
        shipping_city=shipping.city,
        shipping_state=shipping.state,
        shipping_pincode=shipping.pincode,
        notes=shipping.notes,
    )

    try:
        session.add(order)
        session.flush()
        log_order_event(
            session,
            order_id=order.id,
            event_type=OrderEventType.order_placed,
            label="Order placed",
            created_by=f"user:{user.id}",
            meta={"order_number": order.order_number, "total": order.total_amount},
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Could not create pending order for user %s", user.id)
        raise OrderPersistenceError() from exc

    session.refresh(order)
    logger.info(
        "Pending order %s (%s) created for user %s, total %.2f",
        order.id, order.order_number, user.id, order.total_amount,
    )
    return order


def find_pending_order(session: Session, *, user: User, order_id) -> Optional[Order]:
    """The caller's pending order with this id, or None."""
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        return None

    order = session.get(Order, order_id)
    if not order or order.user_id != user.id or order.status != OrderStatus.pending.value:
        return None
    return order


def attach_gateway_order(
    session: Session, *, order: Order, gateway_order_id: str, gateway_amount: int
) -> Order:
    """Bind the gateway order, and the amount it was created for, to a pending order."""
    order.gateway_order_id = gateway_order_id
    order.gateway_amount = gateway_amount
    order.updated_at = datetime.utcnow()
    session.add(order)
    session.commit()
    return order


def get_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if not order:
        raise OrderNotFound(order_id)
    return order


def update_order_status(
    session: Session, *, order: Order, new_status: OrderStatus, actor: User
) -> Order:
    """Admin-driven lifecycle move after settlement (processing, shipped, ...)."""
    current = order.status
    if new_status.value not in ALLOWED_TRANSITIONS.get(current, []):
        raise InvalidStatusTransition(current, new_status.value)

    # stock taken by settlement goes back on cancellation
    if new_status == OrderStatus.cancelled and current in SETTLED_STATUSES:
        items = session.exec(
            select(OrderItem).where(OrderItem.order_id == order.id)
        ).all()
        for item in items:
            restock(session, item.product_id, item.quantity)

    order.status = new_status.value
    order.updated_at = datetime.utcnow()
    session.add(order)
    log_order_event(
        session,
        order_id=order.id,
        event_type=OrderEventType.status_changed,
        label=f"Status changed to {new_status.value}",
        created_by=f"admin:{actor.id}",
        meta={"from": current, "to": new_status.value},
    )
    session.commit()
    session.refresh(order)

    logger.info("Order %s moved %s -> %s by %s", order.id, current, new_status.value, actor.id)
    return order
