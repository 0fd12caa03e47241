from enum import Enum


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


ALLOWED_TRANSITIONS = {
    "pending": ["cancelled"],  # confirmed only through payment verification
    "confirmed": ["processing", "cancelled"],
    "processing": ["shipped", "cancelled"],
    "shipped": ["delivered"],
    "delivered": [],
    "cancelled": []
}

# statuses an order can only reach after a verified payment
SETTLED_STATUSES = {"confirmed", "processing", "shipped", "delivered"}
