from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class SavedAddress(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    is_default: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
