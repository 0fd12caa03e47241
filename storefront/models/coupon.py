from enum import Enum
from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)  # stored upper-case

    discount_type: DiscountType
    discount_value: float
    max_discount_amount: Optional[float] = None
    min_purchase_amount: Optional[float] = None

    # open-ended when None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    max_uses: Optional[int] = None
    current_uses: int = 0
    is_active: bool = True

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def usage_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses


class CouponUsage(SQLModel, table=True):
    """One row per redemption, never updated."""

    id: Optional[int] = Field(default=None, primary_key=True)
    coupon_id: int = Field(foreign_key="coupon.id", index=True)
    user_id: int = Field(foreign_key="user.id")
    order_id: int = Field(foreign_key="order.id", index=True)
    discount_amount: float
    created_at: datetime = Field(default_factory=datetime.utcnow)
