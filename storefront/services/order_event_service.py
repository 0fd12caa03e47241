# storefront/services/order_event_service.py

from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlmodel import Session, select
from storefront.models.order_event import OrderEvent, OrderEventType


def log_order_event(
    session: Session,
    order_id: int,
    event_type: OrderEventType,
    label: str,
    created_by: str = "system",
    meta: Optional[Dict[str, Any]] = None,
) -> OrderEvent:
    """
    Append-only event log for order timeline.
    Added to the caller's transaction, not committed here.
    """

    event = OrderEvent(
        order_id=order_id,
        event_type=event_type.value,
        label=label,
        meta=meta,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )

    session.add(event)
    return event


def order_timeline(session: Session, order_id: int) -> List[OrderEvent]:
    return session.exec(
        select(OrderEvent)
        .where(OrderEvent.order_id == order_id)
        .order_by(OrderEvent.created_at)
    ).all()
