# storefront/schemas/cart_schemas.py
from pydantic import BaseModel, Field
from typing import Optional


class ProductSnapshot(BaseModel):
    name: str
    price: float                            # list price
    discount_price: Optional[float] = None
    stock: Optional[int] = None             # stock as seen when the cart was read


class CartLine(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    products: ProductSnapshot

    @property
    def unit_price(self) -> float:
        if self.products.discount_price is not None:
            return self.products.discount_price
        return self.products.price

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity
