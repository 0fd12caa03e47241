from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime


class CartItem(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "product_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    product_id: int = Field(foreign_key="product.id")
    quantity: int = 1
    created_at: datetime = Field(default_factory=datetime.utcnow)
