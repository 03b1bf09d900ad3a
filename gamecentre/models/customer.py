"""Customer model."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    id: str = Field(default_factory=lambda: f"cus_{secrets.token_hex(4)}", primary_key=True)
    name: str = Field(max_length=100)
    phone: str = Field(max_length=10, index=True)
    address: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
