"""Payment verification and settlement.

The verifier is the trust boundary of checkout: nothing in the database
changes unless the gateway signature checks out, and once it does, every
settlement step runs in a single transaction so a failure at any step
leaves the order, stock, coupon and cart exactly as they were.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

import razorpay
from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from storefront.config import Settings
from storefront.constants.order_status import SETTLED_STATUSES, OrderStatus
from storefront.errors import (
    ConfigurationError,
    CouponLimitReached,
    EmptyCart,
    OrderTotalMismatch,
    PaymentVerificationFailed,
    SettlementError,
    SettlementOrderNotFound,
    StorefrontError,
)
from storefront.models.address import SavedAddress
from storefront.models.coupon import Coupon, CouponUsage
from storefront.models.order import Order
from storefront.models.order_event import OrderEventType
from storefront.models.order_item import OrderItem
from storefront.models.user import User
from storefront.schemas.cart_schemas import CartLine
from storefront.schemas.checkout_schemas import ShippingDetails
from storefront.schemas.payment_schemas import RazorpayPaymentVerifySchema
from storefront.services.cart_service import clear_cart
from storefront.services.gateway_service import to_minor_units
from storefront.services.inventory_service import reduce_stock
from storefront.services.order_event_service import log_order_event

logger = logging.getLogger(__name__)

# tolerance when reconciling float money
TOTAL_TOLERANCE = 0.01


class VerificationState(str, Enum):
    RECEIVED = "received"
    SIGNATURE_VALID = "signature_valid"
    SIGNATURE_INVALID = "signature_invalid"
    SETTLED = "settled"
    SETTLEMENT_FAILED = "settlement_failed"


@dataclass
class SettlementResult:
    order: Order
    state: VerificationState
    already_settled: bool = False

    @property
    def order_id(self) -> int:
        return self.order.id


def reconcile_totals(order: Order, lines: List[CartLine]) -> None:
    """Cart snapshot must add up to the amount the order was created (and paid) for."""
    if not lines:
        raise EmptyCart()

    subtotal = round(sum(line.line_total for line in lines), 2)
    expected = max(round(subtotal + order.shipping_amount - order.discount_amount, 2), 0)

    if abs(expected - order.total_amount) > TOTAL_TOLERANCE:
        raise OrderTotalMismatch(order.total_amount, expected)


def confirm_order(session: Session, order: Order, user: User, payment_id: str) -> bool:
    """pending -> confirmed, scoped to the owner. True if this call made the flip."""
    result = session.execute(
        update(Order)
        .where(Order.id == order.id)
        .where(Order.user_id == user.id)
        .where(Order.status == OrderStatus.pending.value)
        .values(
            status=OrderStatus.confirmed.value,
            gateway_payment_id=payment_id,
            updated_at=datetime.utcnow(),
        )
    )
    return result.rowcount == 1


def write_order_items(session: Session, order: Order, lines: List[CartLine]) -> None:
    for line in lines:
        session.add(
            OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                product_name=line.products.name,
                price=line.unit_price,
                quantity=line.quantity,
            )
        )
    session.flush()


def save_address(session: Session, user: User, address: ShippingDetails) -> SavedAddress:
    existing = session.exec(
        select(func.count()).select_from(SavedAddress).where(SavedAddress.user_id == user.id)
    ).one()

    saved = SavedAddress(
        user_id=user.id,
        name=address.full_name,
        email=address.email,
        phone=address.phone,
        address=address.address,
        city=address.city,
        state=address.state,
        zip_code=address.pincode,
        is_default=existing == 0,
    )
    session.add(saved)
    return saved


def redeem_coupon(session: Session, coupon_id: int, user: User, order: Order) -> None:
    result = session.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id)
        .where(or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses))
        .values(current_uses=Coupon.current_uses + 1)
    )

    if result.rowcount != 1:
        if session.get(Coupon, coupon_id) is None:
            raise SettlementError("Coupon not found")
        raise CouponLimitReached()

    session.add(
        CouponUsage(
            coupon_id=coupon_id,
            user_id=user.id,
            order_id=order.id,
            discount_amount=order.discount_amount,
        )
    )


def gateway_binding_problem(
    session: Session, order: Order, payload: RazorpayPaymentVerifySchema
) -> Optional[str]:
    """Why this payment cannot settle this order, or None if it may.

    The signature only proves the gateway issued the (order, payment) pair;
    the pair must also belong to the gateway order created for this order,
    for its full amount, and must not have paid for another order already.
    """
    if not order.gateway_order_id:
        return "Razorpay order not initialized"

    if order.gateway_order_id != payload.razorpay_order_id:
        return f"bound to razorpay order {order.gateway_order_id}"

    if order.gateway_amount != to_minor_units(order.total_amount):
        return f"gateway amount {order.gateway_amount} does not cover total {order.total_amount:.2f}"

    used_by = session.exec(
        select(Order.id)
        .where(Order.gateway_payment_id == payload.razorpay_payment_id)
        .where(Order.id != order.id)
    ).first()
    if used_by is not None:
        return f"payment already settled order {used_by}"

    return None


def settle_order(
    session: Session, *, user: User, payload: RazorpayPaymentVerifySchema
) -> SettlementResult:
    """Apply every post-payment mutation. Does not commit.

    An order that is already past `pending` short-circuits as settled
    without touching anything, which makes a retried verification harmless.
    """
    order = session.get(Order, payload.order_id)
    if not order or order.user_id != user.id:
        raise SettlementOrderNotFound()

    if order.status in SETTLED_STATUSES:
        logger.info("Order %s already settled, skipping", order.id)
        return SettlementResult(order, VerificationState.SETTLED, already_settled=True)

    if order.status != OrderStatus.pending.value:
        raise SettlementError(f"Order is {order.status} and can no longer be paid")

    lines = payload.cart_items
    reconcile_totals(order, lines)

    # 1. status flip, the idempotency gate
    if not confirm_order(session, order, user, payload.razorpay_payment_id):
        session.refresh(order)
        if order.status in SETTLED_STATUSES:
            logger.info("Order %s settled concurrently, skipping", order.id)
            return SettlementResult(order, VerificationState.SETTLED, already_settled=True)
        raise SettlementOrderNotFound()

    # 2. order items from the snapshot
    write_order_items(session, order, lines)

    # 3. stock
    for line in lines:
        reduce_stock(session, line.product_id, line.quantity)

    # 4. address book
    if payload.save_address and payload.address_data:
        save_address(session, user, payload.address_data)

    # 5. coupon accounting
    if payload.coupon_id is not None and payload.coupon_id != order.coupon_id:
        logger.warning(
            "Order %s: coupon %s in request differs from coupon %s on order, using the order's",
            order.id, payload.coupon_id, order.coupon_id,
        )
    if order.coupon_id is not None:
        redeem_coupon(session, order.coupon_id, user, order)

    # 6. cart
    cleared = clear_cart(session, user.id)

    log_order_event(
        session,
        order_id=order.id,
        event_type=OrderEventType.payment_confirmed,
        label="Payment received, order confirmed",
        created_by=f"user:{user.id}",
        meta={
            "razorpay_order_id": payload.razorpay_order_id,
            "razorpay_payment_id": payload.razorpay_payment_id,
            "items": len(lines),
            "cart_items_cleared": cleared,
        },
    )

    return SettlementResult(order, VerificationState.SETTLED)


class PaymentVerifier:
    """Checks the gateway callback signature and, only then, settles the order."""

    def __init__(self, settings: Settings, client: Optional[razorpay.Client] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            if not self.settings.razorpay_key_secret:
                raise ConfigurationError("Server configuration error")
            self._client = razorpay.Client(
                auth=(self.settings.razorpay_key_id, self.settings.razorpay_key_secret)
            )
        return self._client

    def signature_matches(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        # HMAC-SHA256 over "order_id|payment_id", compared in constant time by the SDK
        if not signature.isascii():
            return False
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": gateway_order_id,
                "razorpay_payment_id": gateway_payment_id,
                "razorpay_signature": signature,
            })
        except razorpay.errors.SignatureVerificationError:
            return False
        return True

    def verify(
        self, session: Session, user: User, payload: RazorpayPaymentVerifySchema
    ) -> SettlementResult:
        state = VerificationState.RECEIVED
        logger.info(
            "Verifying payment: razorpay_order_id=%s razorpay_payment_id=%s order=%s state=%s",
            payload.razorpay_order_id, payload.razorpay_payment_id, payload.order_id, state.value,
        )

        if not self.signature_matches(
            payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature
        ):
            state = VerificationState.SIGNATURE_INVALID
            logger.warning(
                "Signature verification failed, possible tampering: user=%s order=%s "
                "razorpay_order_id=%s razorpay_payment_id=%s state=%s",
                user.id, payload.order_id, payload.razorpay_order_id,
                payload.razorpay_payment_id, state.value,
            )
            raise PaymentVerificationFailed()

        order = session.get(Order, payload.order_id)
        if order is not None and order.user_id == user.id:
            problem = gateway_binding_problem(session, order, payload)
            if problem:
                state = VerificationState.SIGNATURE_INVALID
                logger.warning(
                    "Payment %s rejected for order %s: %s, state=%s",
                    payload.razorpay_payment_id, order.id, problem, state.value,
                )
                raise PaymentVerificationFailed()

        state = VerificationState.SIGNATURE_VALID
        logger.info("Payment signature verified for order %s, state=%s", payload.order_id, state.value)

        try:
            result = settle_order(session, user=user, payload=payload)
            session.commit()
        except StorefrontError:
            session.rollback()
            state = VerificationState.SETTLEMENT_FAILED
            logger.exception("Settlement of order %s failed, state=%s", payload.order_id, state.value)
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            state = VerificationState.SETTLEMENT_FAILED
            logger.exception("Settlement of order %s failed, state=%s", payload.order_id, state.value)
            raise SettlementError("Could not complete settlement") from exc

        session.refresh(result.order)
        logger.info(
            "Payment verified and order %s completed (already_settled=%s), state=%s",
            result.order_id, result.already_settled, result.state.value,
        )
        return result
