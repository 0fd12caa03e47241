from pydantic import BaseModel

from storefront.constants.order_status import OrderStatus


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
