from typing import List

from sqlalchemy import delete
from sqlmodel import Session, select

from storefront.models.cart import CartItem
from storefront.models.product import Product
from storefront.schemas.cart_schemas import CartLine, ProductSnapshot


def read_cart_snapshot(session: Session, user_id: int) -> List[CartLine]:
    """Current cart lines of a user with the product prices they would pay now.

    Rows pointing at a product that no longer exists are skipped.
    """
    rows = session.exec(
        select(CartItem, Product)
        .join(Product, CartItem.product_id == Product.id)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.created_at, CartItem.id)
    ).all()

    return [
        CartLine(
            product_id=product.id,
            quantity=item.quantity,
            products=ProductSnapshot(
                name=product.name,
                price=product.price,
                discount_price=product.discount_price,
                stock=product.stock,
            ),
        )
        for item, product in rows
    ]


def clear_cart(session: Session, user_id: int) -> int:
    """Delete every cart row of the user. The caller owns the commit."""
    result = session.execute(
        delete(CartItem).where(CartItem.user_id == user_id)
    )
    return result.rowcount
