from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from storefront.config import Settings, get_settings
from storefront.database import get_session
from storefront.errors import EmptyCart
from storefront.models.address import SavedAddress
from storefront.models.user import User
from storefront.schemas.checkout_schemas import (
    PlaceOrderRequest,
    PlaceOrderResponse,
    QuoteRequest,
    QuoteResponse,
)
from storefront.services.cart_service import read_cart_snapshot
from storefront.services.order_service import create_pending_order
from storefront.services.pricing_service import evaluate_cart
from storefront.utils.token import get_current_user

router = APIRouter()


@router.get("/addresses")
def list_addresses(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return session.exec(
        select(SavedAddress)
        .where(SavedAddress.user_id == current_user.id)
        .order_by(SavedAddress.is_default.desc(), SavedAddress.created_at.desc())
    ).all()


# Apply coupon / refresh totals

@router.post("/quote", response_model=QuoteResponse)
def checkout_quote(
    data: QuoteRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    lines = read_cart_snapshot(session, current_user.id)
    if not lines:
        raise EmptyCart()

    quote, _ = evaluate_cart(session, lines, data.coupon_code, settings=settings)
    return {"items": lines, "summary": quote}


# Place order (pending, before payment)

@router.post("/orders", response_model=PlaceOrderResponse, status_code=201)
def place_order(
    data: PlaceOrderRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    lines = read_cart_snapshot(session, current_user.id)
    if not lines:
        raise EmptyCart()

    # totals are always priced here, never taken from the client
    quote, _ = evaluate_cart(session, lines, data.coupon_code, settings=settings)

    order = create_pending_order(
        session,
        user=current_user,
        shipping=data.shipping,
        quote=quote,
    )

    # DO NOT clear cart now -> cleared by payment settlement
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "summary": quote,
    }
