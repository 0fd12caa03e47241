from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime

from storefront.models.order_item import OrderItem


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(unique=True, index=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    # fixed at creation, never recomputed
    total_amount: float
    shipping_amount: float = 0
    discount_amount: float = 0
    coupon_id: Optional[int] = Field(default=None, foreign_key="coupon.id")

    status: str = Field(default="pending", index=True)
    gateway_order_id: Optional[str] = Field(default=None, index=True)
    gateway_amount: Optional[int] = None  # minor units the gateway order was created for
    gateway_payment_id: Optional[str] = Field(default=None, unique=True)

    # shipping snapshot
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_pincode: str
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["OrderItem"] = Relationship(back_populates="order")
