# storefront/schemas/checkout_schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional

from storefront.schemas.cart_schemas import CartLine


class PriceQuote(BaseModel):
    subtotal: float
    shipping_fee: float
    discount: float
    total: float            # subtotal + shipping_fee - discount, never below 0
    coupon_id: Optional[int] = None
    coupon_code: Optional[str] = None


class QuoteRequest(BaseModel):
    coupon_code: Optional[str] = None


class QuoteResponse(BaseModel):
    items: List[CartLine]
    summary: PriceQuote


class ShippingDetails(BaseModel):
    """Buyer contact and destination, as typed in the checkout form."""

    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(alias="fullName", min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(min_length=10, max_length=15)
    address: str = Field(min_length=10, max_length=500)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    pincode: str = Field(min_length=6, max_length=6)
    notes: Optional[str] = Field(default=None, max_length=500)


class PlaceOrderRequest(BaseModel):
    shipping: ShippingDetails
    coupon_code: Optional[str] = None


class PlaceOrderResponse(BaseModel):
    order_id: int
    order_number: str
    status: str
    summary: PriceQuote
