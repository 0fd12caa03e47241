import logging
from datetime import datetime
from typing import Iterable, Optional, Tuple

from sqlmodel import Session, select

from storefront.config import Settings
from storefront.errors import CouponRejected
from storefront.models.coupon import Coupon, DiscountType
from storefront.schemas.cart_schemas import CartLine
from storefront.schemas.checkout_schemas import PriceQuote

logger = logging.getLogger(__name__)


def calculate_subtotal(lines: Iterable[CartLine]) -> float:
    return round(sum(line.line_total for line in lines), 2)


def calculate_shipping(subtotal: float, settings: Settings) -> float:
    if subtotal <= 0:
        return 0
    return 0 if subtotal >= settings.free_shipping_threshold else settings.shipping_flat_rate


def validate_coupon(coupon: Coupon, subtotal: float, now: datetime) -> None:
    """Raise CouponRejected with the first failing rule, in checkout order."""
    if not coupon.is_active:
        raise CouponRejected("Invalid coupon code")

    if (coupon.valid_from and now < coupon.valid_from) or (
        coupon.valid_until and now > coupon.valid_until
    ):
        raise CouponRejected("This coupon has expired or is not yet valid")

    if coupon.usage_exhausted:
        raise CouponRejected("This coupon has reached its usage limit")

    if coupon.min_purchase_amount is not None and subtotal < coupon.min_purchase_amount:
        raise CouponRejected(
            f"Minimum purchase amount of ₹{coupon.min_purchase_amount:g} required"
        )


def calculate_discount(coupon: Coupon, subtotal: float) -> float:
    if coupon.discount_type == DiscountType.percentage:
        discount = subtotal * coupon.discount_value / 100
        if coupon.max_discount_amount is not None and discount > coupon.max_discount_amount:
            discount = coupon.max_discount_amount
    else:
        discount = coupon.discount_value

    return round(min(discount, subtotal), 2)


def calculate_totals(
    lines: Iterable[CartLine],
    coupon: Optional[Coupon] = None,
    *,
    settings: Settings,
    now: Optional[datetime] = None,
) -> PriceQuote:
    """Price a cart snapshot. Pure: reads nothing but its arguments."""
    subtotal = calculate_subtotal(lines)
    shipping = calculate_shipping(subtotal, settings)

    discount = 0
    if coupon is not None:
        validate_coupon(coupon, subtotal, now or datetime.utcnow())
        discount = calculate_discount(coupon, subtotal)

    total = max(round(subtotal + shipping - discount, 2), 0)

    return PriceQuote(
        subtotal=subtotal,
        shipping_fee=shipping,
        discount=discount,
        total=total,
        coupon_id=coupon.id if coupon else None,
        coupon_code=coupon.code if coupon else None,
    )


def find_coupon(session: Session, code: str) -> Optional[Coupon]:
    return session.exec(
        select(Coupon)
        .where(Coupon.code == code.strip().upper())
        .where(Coupon.is_active == True)  # noqa: E712
    ).first()


def evaluate_cart(
    session: Session,
    lines: Iterable[CartLine],
    coupon_code: Optional[str] = None,
    *,
    settings: Settings,
    now: Optional[datetime] = None,
) -> Tuple[PriceQuote, Optional[Coupon]]:
    lines = list(lines)
    coupon = None

    if coupon_code and coupon_code.strip():
        coupon = find_coupon(session, coupon_code)
        if coupon is None:
            logger.info("Unknown coupon code %r", coupon_code)
            raise CouponRejected("Invalid coupon code")

    quote = calculate_totals(lines, coupon, settings=settings, now=now)
    return quote, coupon
