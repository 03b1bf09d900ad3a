"""Session request/response schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from gamecentre.utils.security import CODE_PATTERN


# --- Requests ---

class SessionCreateRequest(BaseModel):
    name: str
    phone: str
    address: Optional[str] = None
    device_id: str
    duration_minutes: int  # 30 | 60 | 120
    amount: Optional[float] = None  # defaults to the catalogue price


class PaymentRequest(BaseModel):
    method: str  # 'online' | 'cash'


class VerifyRequest(BaseModel):
    code: str = Field(pattern=CODE_PATTERN.pattern)


class EndSessionRequest(BaseModel):
    reason: str = Field(default="ended", pattern="^(ended|timer)$")


# --- Responses ---

class SessionResponse(BaseModel):
    id: str
    customer_id: str
    customer_name: Optional[str]
    customer_phone: Optional[str]
    customer_address: Optional[str]
    device_id: str
    device_name: Optional[str]
    duration_minutes: int
    amount: float
    amount_display: str
    payment_status: str
    payment_method: str
    status: str
    code_attempts: int
    remaining_attempts: int
    code_expires_at: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    closed_reason: Optional[str]
    created_at: str
    remaining_seconds: int
    progress_percent: float
    warning: bool


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int


class ApproveResponse(BaseModel):
    session: SessionResponse
    code: str  # delivered to the customer out of band
    expires_in: int
