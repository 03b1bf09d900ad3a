"""Common API dependencies: the session engine and error translation."""

from fastapi import HTTPException, Request, status

from gamecentre.services.errors import (
    AttemptsExhausted,
    CodeExpired,
    GameCentreError,
    InvalidCode,
    NotFoundError,
    PaymentFailed,
    StateConflictError,
    StoreError,
    ValidationError,
)
from gamecentre.services.session_service import SessionEngine

# Most specific first
ERROR_STATUS = [
    (ValidationError, 422),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StateConflictError, status.HTTP_409_CONFLICT),
    (CodeExpired, status.HTTP_410_GONE),
    (AttemptsExhausted, status.HTTP_429_TOO_MANY_REQUESTS),
    (InvalidCode, status.HTTP_401_UNAUTHORIZED),
    (PaymentFailed, status.HTTP_402_PAYMENT_REQUIRED),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def get_session_engine(request: Request) -> SessionEngine:
    """The SessionEngine built at startup (see main.lifespan)."""
    return request.app.state.sessions


def http_error(e: GameCentreError) -> HTTPException:
    """Translate a core error into an HTTP error with a structured detail."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in ERROR_STATUS:
        if isinstance(e, error_type):
            status_code = code
            break
    return HTTPException(
        status_code=status_code,
        detail={
            "error": e.code,
            "remaining_attempts": e.remaining_attempts,
            "message": e.message,
        },
    )
