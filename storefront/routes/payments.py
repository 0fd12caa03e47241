import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session, select
from storefront.config import Settings, get_settings
from storefront.database import get_session
from storefront.dependencies.gateway import get_gateway_bridge, get_payment_verifier
from storefront.errors import InvalidAmount
from storefront.models.order_item import OrderItem
from storefront.models.user import User
from storefront.schemas.payment_schemas import (
    GatewayOrderCreate,
    GatewayOrderResponse,
    PaymentVerifiedResponse,
    RazorpayPaymentVerifySchema,
)
from storefront.services.gateway_service import GatewayOrderBridge, to_minor_units, validate_amount
from storefront.services.order_email_service import order_email_context, send_payment_success_email
from storefront.services.order_service import attach_gateway_order, find_pending_order
from storefront.services.payment_service import PaymentVerifier
from storefront.utils.token import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/config")
def razorpay_config(settings: Settings = Depends(get_settings)):
    """Public key id for the hosted checkout. The secret never leaves the server."""
    return {"key_id": settings.razorpay_key_id}


@router.post("/create-order", response_model=GatewayOrderResponse)
def create_razorpay_order(
    data: GatewayOrderCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    bridge: GatewayOrderBridge = Depends(get_gateway_bridge),
):
    """Create a Razorpay order before payment"""
    order = None
    if data.notes and "order_id" in data.notes:
        order = find_pending_order(session, user=current_user, order_id=data.notes["order_id"])

    # gateway amount must equal the stored order total
    if order is not None and validate_amount(data.amount) != to_minor_units(order.total_amount):
        logger.warning(
            "Gateway amount %s does not match order %s total %.2f, rejecting",
            data.amount, order.id, order.total_amount,
        )
        raise InvalidAmount()

    gateway_order = bridge.create_order(
        amount=data.amount,
        receipt=data.receipt,
        currency=data.currency,
        notes=data.notes,
    )

    if order is not None:
        attach_gateway_order(
            session,
            order=order,
            gateway_order_id=gateway_order["order_id"],
            gateway_amount=gateway_order["amount"],
        )

    return gateway_order


@router.post("/verify", response_model=PaymentVerifiedResponse)
def verify_razorpay_payment(
    payload: RazorpayPaymentVerifySchema,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
):
    """
    Verify Razorpay payment for logged-in user and settle the order
    """
    result = verifier.verify(session, current_user, payload)

    if not result.already_settled:
        items = session.exec(
            select(OrderItem).where(OrderItem.order_id == result.order_id)
        ).all()
        background_tasks.add_task(
            send_payment_success_email, order_email_context(result.order, items)
        )

    return {
        "success": True,
        "message": "Payment verified successfully",
        "order_id": result.order_id,
    }
