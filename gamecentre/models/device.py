"""Device model."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Device(SQLModel, table=True):
    __tablename__ = "devices"

    id: str = Field(primary_key=True)  # stable identifier, e.g. 'CONSOLE-01'
    name: str
    kind: str = Field(default="console")  # 'console' | 'pc'
    status: str = Field(default="locked")  # 'locked' | 'unlocked'
    current_session_id: Optional[str] = Field(default=None, index=True)  # id of the active session
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
