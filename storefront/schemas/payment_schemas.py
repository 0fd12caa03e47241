# storefront/schemas/payment_schemas.py
from pydantic import BaseModel
from typing import Any, Dict, List, Optional

from storefront.schemas.cart_schemas import CartLine
from storefront.schemas.checkout_schemas import ShippingDetails


class GatewayOrderCreate(BaseModel):
    amount: Optional[float] = None   # major currency units
    currency: Optional[str] = None
    receipt: str
    notes: Optional[Dict[str, Any]] = None


class GatewayOrderResponse(BaseModel):
    order_id: str
    amount: int                      # minor currency units
    currency: str
    receipt: Optional[str] = None


class RazorpayPaymentVerifySchema(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str

    order_id: int
    cart_items: List[CartLine]

    coupon_id: Optional[int] = None
    discount_amount: Optional[float] = None

    save_address: bool = False
    address_data: Optional[ShippingDetails] = None


class PaymentVerifiedResponse(BaseModel):
    success: bool
    message: str
    order_id: int
