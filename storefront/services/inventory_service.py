import logging

from sqlalchemy import update
from sqlmodel import Session

from storefront.errors import InsufficientStock, SettlementError
from storefront.models.product import Product

logger = logging.getLogger(__name__)


def reduce_stock(session: Session, product_id: int, quantity: int) -> None:
    """Decrement stock only if enough is left; one statement, no read-then-write.

    Runs inside the caller's transaction.
    """
    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .where(Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
    )

    if result.rowcount == 1:
        logger.info("Stock of product %s reduced by %s", product_id, quantity)
        return

    product = session.get(Product, product_id)
    if product is None:
        raise SettlementError(f"Product {product_id} not found")

    logger.warning(
        "Insufficient stock for product %s: available %s, requested %s",
        product_id, product.stock, quantity,
    )
    raise InsufficientStock(product.name)


def restock(session: Session, product_id: int, quantity: int) -> None:
    session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
    )
