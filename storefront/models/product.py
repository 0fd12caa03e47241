from sqlmodel import SQLModel, Field
from sqlalchemy import CheckConstraint
from typing import Optional
from datetime import datetime


class Product(SQLModel, table=True):
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str

    # Shop details
    price: float
    discount_price: Optional[float] = None
    stock: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
