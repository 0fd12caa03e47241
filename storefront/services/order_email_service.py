from typing import List

from storefront.models.order import Order
from storefront.models.order_item import OrderItem
from storefront.notifications import NotificationEvent, dispatch_order_event


def order_email_context(order: Order, items: List[OrderItem]) -> dict:
    """Plain data for templates, safe to hand to a background task after the session closes."""
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "total_amount": order.total_amount,
        "shipping_amount": order.shipping_amount,
        "discount_amount": order.discount_amount,
        "payment_id": order.gateway_payment_id,
        "items": [
            {"product_name": i.product_name, "price": i.price, "quantity": i.quantity}
            for i in items
        ],
        "product_names": [i.product_name for i in items],
    }


def send_payment_success_email(context: dict) -> bool:
    return dispatch_order_event(
        event=NotificationEvent.PAYMENT_SUCCESS,
        recipient_email=context["customer_email"],
        recipient_name=context["customer_name"],
        extra={
            "user_template": "user_emails/payment_success.html",
            "user_subject": f"Payment received for order {context['order_number']}",
            "admin_template": "admin_emails/payment_received.html",
            "admin_subject": f"Payment received {context['order_number']}",
            **context,
        },
    )


def send_delivery_notification(context: dict) -> bool:
    return dispatch_order_event(
        event=NotificationEvent.OUT_FOR_DELIVERY,
        recipient_email=context["customer_email"],
        recipient_name=context["customer_name"] or "Valued Customer",
        notify_admin=False,
        extra={
            "user_template": "user_emails/out_for_delivery.html",
            "user_subject": f"Your Order {context['order_number']} is Out for Delivery!",
            **context,
        },
    )
