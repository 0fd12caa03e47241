from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Any, Dict, Optional
from datetime import datetime
from enum import Enum
from uuid import uuid4


class OrderEventType(str, Enum):
    order_placed = "order_placed"
    payment_confirmed = "payment_confirmed"
    status_changed = "status_changed"


class OrderEvent(SQLModel, table=True):
    """One entry of an order's timeline. Rows are only ever inserted."""

    __tablename__ = "order_event"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    event_type: str = Field(index=True)  # OrderEventType value
    label: str

    # gateway ids, status from/to, totals; whatever the event needs to be replayed on a timeline
    meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    # "system", "user:<id>" or "admin:<id>"
    created_by: str = Field(default="system")
    created_at: datetime = Field(default_factory=datetime.utcnow)
