# -------- ADMIN ORDERS --------
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session, select
from storefront.constants.order_status import OrderStatus
from storefront.database import get_session
from storefront.dependencies.admin import require_admin
from storefront.models.order_item import OrderItem
from storefront.models.user import User
from storefront.schemas.order_schemas import OrderStatusUpdate
from storefront.services.order_email_service import order_email_context, send_delivery_notification
from storefront.services.order_event_service import order_timeline
from storefront.services.order_service import get_order, update_order_status

router = APIRouter()


@router.get("/{order_id}")
def order_details(
    order_id: int,
    session: Session = Depends(get_session),
    _: User = Depends(require_admin),
):
    order = get_order(session, order_id)
    items = session.exec(
        select(OrderItem).where(OrderItem.order_id == order.id)
    ).all()

    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "customer": {
            "name": order.customer_name,
            "email": order.customer_email,
            "phone": order.customer_phone,
        },
        "total_amount": order.total_amount,
        "shipping_amount": order.shipping_amount,
        "discount_amount": order.discount_amount,
        "created_at": order.created_at,
        "items": [
            {
                "product_name": i.product_name,
                "price": i.price,
                "quantity": i.quantity,
                "total": i.price * i.quantity,
            }
            for i in items
        ],
        "timeline": [
            {"event": e.event_type, "label": e.label, "at": e.created_at, "by": e.created_by}
            for e in order_timeline(session, order.id)
        ],
    }


@router.patch("/{order_id}/status")
def change_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    order = get_order(session, order_id)
    order = update_order_status(session, order=order, new_status=data.status, actor=admin)

    # Send email notification if status is changed to delivered
    if data.status == OrderStatus.delivered:
        items = session.exec(
            select(OrderItem).where(OrderItem.order_id == order.id)
        ).all()
        background_tasks.add_task(send_delivery_notification, order_email_context(order, items))

    return {"message": "Order status updated successfully", "order_id": order.id, "status": order.status}
