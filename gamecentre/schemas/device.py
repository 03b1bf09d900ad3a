"""Device schemas."""

from typing import Optional

from pydantic import BaseModel


class DeviceResponse(BaseModel):
    id: str
    name: str
    kind: str
    status: str
    current_session_id: Optional[str]
    updated_at: Optional[str]


class DeviceListResponse(BaseModel):
    devices: list[DeviceResponse]
    total: int
    available: int
