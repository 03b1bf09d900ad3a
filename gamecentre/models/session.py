"""Gaming session model."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class GameSession(SQLModel, table=True):
    __tablename__ = "sessions"

    id: str = Field(default_factory=lambda: f"ses_{secrets.token_hex(6)}", primary_key=True)
    customer_id: str = Field(foreign_key="customers.id", index=True)
    device_id: str = Field(foreign_key="devices.id", index=True)
    duration_minutes: int
    amount: float = Field(default=0.0)
    payment_status: str = Field(default="pending")  # 'pending' | 'paid'
    payment_method: str = Field(default="unset")  # 'unset' | 'online' | 'cash'
    status: str = Field(default="pending", index=True)
    # 'pending' | 'approved' | 'rejected' | 'active' | 'completed'

    # One-time code, only set while 'approved'
    code: Optional[str] = None
    code_expires_at: Optional[datetime] = None
    code_attempts: int = Field(default=0)

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    closed_reason: Optional[str] = None  # 'rejected' | 'code_expired' | 'ended' | 'timer'
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
