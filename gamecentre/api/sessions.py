"""Gaming session API endpoints (customer console + operator dashboard)."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from gamecentre.api.deps import get_session_engine, http_error
from gamecentre.schemas.session import (
    ApproveResponse,
    EndSessionRequest,
    PaymentRequest,
    SessionCreateRequest,
    SessionListResponse,
    SessionResponse,
    VerifyRequest,
)
from gamecentre.services.errors import GameCentreError
from gamecentre.services.scheduler import as_utc
from gamecentre.services.session_service import SessionEngine, SessionView

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _iso(dt: datetime | None) -> str | None:
    return as_utc(dt).isoformat() if dt else None


def _to_response(view: SessionView, engine: SessionEngine) -> SessionResponse:
    s = view.session
    return SessionResponse(
        id=s.id,
        customer_id=s.customer_id,
        customer_name=view.customer.name if view.customer else None,
        customer_phone=view.customer.phone if view.customer else None,
        customer_address=view.customer.address if view.customer else None,
        device_id=s.device_id,
        device_name=view.device.name if view.device else None,
        duration_minutes=s.duration_minutes,
        amount=s.amount,
        amount_display=f"{s.amount:.2f}",
        payment_status=s.payment_status,
        payment_method=s.payment_method,
        status=s.status,
        code_attempts=s.code_attempts,
        remaining_attempts=max(engine.codes.max_attempts - s.code_attempts, 0),
        code_expires_at=_iso(s.code_expires_at),
        start_time=_iso(s.start_time),
        end_time=_iso(s.end_time),
        closed_reason=s.closed_reason,
        created_at=_iso(s.created_at),
        remaining_seconds=view.remaining_seconds,
        progress_percent=view.progress_percent,
        warning=view.warning,
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(request: SessionCreateRequest, engine: SessionEngine = Depends(get_session_engine)):
    """Customer requests a device for a paid duration."""
    try:
        record = engine.request(
            name=request.name,
            phone=request.phone,
            address=request.address,
            device_id=request.device_id,
            duration_minutes=request.duration_minutes,
            amount=request.amount,
        )
    except GameCentreError as e:
        raise http_error(e)
    return _to_response(engine.session_view(record), engine)


@router.get("", response_model=SessionListResponse)
def list_sessions(
    status_filter: str | None = Query(
        default=None, alias="status", pattern="^(pending|approved|rejected|active|completed)$",
    ),
    engine: SessionEngine = Depends(get_session_engine),
):
    """List sessions, newest first (operator dashboard)."""
    records = engine.list_sessions(status_filter)
    sessions = [_to_response(engine.session_view(r), engine) for r in records]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(session_id: str, engine: SessionEngine = Depends(get_session_engine)):
    """Session details with countdown (remaining time, progress, warning)."""
    try:
        view = engine.session_view(session_id)
    except GameCentreError as e:
        raise http_error(e)
    return _to_response(view, engine)


@router.post("/{session_id}/payment", response_model=SessionResponse)
def set_payment(
    session_id: str,
    request: PaymentRequest,
    engine: SessionEngine = Depends(get_session_engine),
):
    """Choose online or cash payment."""
    try:
        record = engine.set_payment_method(session_id, request.method)
    except GameCentreError as e:
        raise http_error(e)
    return _to_response(engine.session_view(record), engine)


@router.post("/{session_id}/approve", response_model=ApproveResponse)
def approve_session(session_id: str, engine: SessionEngine = Depends(get_session_engine)):
    """Operator approves the request. The returned code goes to the customer."""
    try:
        record = engine.approve(session_id)
    except GameCentreError as e:
        raise http_error(e)
    return ApproveResponse(
        session=_to_response(engine.session_view(record), engine),
        code=record.code,
        expires_in=engine.codes.expire_seconds,
    )


@router.post("/{session_id}/reject", response_model=SessionResponse)
def reject_session(session_id: str, engine: SessionEngine = Depends(get_session_engine)):
    try:
        record = engine.reject(session_id)
    except GameCentreError as e:
        raise http_error(e)
    return _to_response(engine.session_view(record), engine)


@router.post("/{session_id}/verify", response_model=SessionResponse)
def verify_session(
    session_id: str,
    request: VerifyRequest,
    engine: SessionEngine = Depends(get_session_engine),
):
    """Customer enters the code; on success the device unlocks."""
    try:
        record = engine.verify_and_activate(session_id, request.code)
    except GameCentreError as e:
        raise http_error(e)
    return _to_response(engine.session_view(record), engine)


@router.post("/{session_id}/end", response_model=SessionResponse)
def end_session(
    session_id: str,
    request: EndSessionRequest | None = None,
    engine: SessionEngine = Depends(get_session_engine),
):
    """Operator ends the session and relocks the device."""
    reason = request.reason if request else "ended"
    try:
        record = engine.end_session(session_id, reason=reason)
    except GameCentreError as e:
        raise http_error(e)
    return _to_response(engine.session_view(record), engine)
