"""Typed errors raised by the session core.

Every error carries a stable ``code`` used by the API layer, plus
``remaining_attempts`` for code verification failures.
"""


class GameCentreError(Exception):
    code = "error"

    def __init__(self, message: str = "", remaining_attempts: int = 0):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.remaining_attempts = remaining_attempts


# --- Validation ---

class ValidationError(GameCentreError):
    code = "validation_error"


class InvalidName(ValidationError):
    code = "invalid_name"


class InvalidPhone(ValidationError):
    code = "invalid_phone"


class InvalidAddress(ValidationError):
    code = "invalid_address"


class InvalidDuration(ValidationError):
    code = "invalid_duration"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class InvalidPaymentMethod(ValidationError):
    code = "invalid_payment_method"


class UnknownDevice(ValidationError):
    code = "unknown_device"


# --- Lookup ---

class NotFoundError(GameCentreError):
    code = "not_found"


class SessionNotFound(NotFoundError):
    code = "session_not_found"


# --- State conflicts ---

class StateConflictError(GameCentreError):
    code = "state_conflict"


class InvalidState(StateConflictError):
    code = "invalid_state"


class AlreadyHeld(StateConflictError):
    code = "already_held"


# --- One-time codes ---

class CodeError(GameCentreError):
    code = "code_error"


class CodeExpired(CodeError):
    code = "code_expired"


class InvalidCode(CodeError):
    code = "invalid_code"


class AttemptsExhausted(CodeError):
    code = "attempts_exhausted"


# --- Payment ---

class PaymentFailed(GameCentreError):
    code = "payment_failed"


# --- Storage ---

class StoreError(GameCentreError):
    code = "store_error"

    def __init__(self, message: str = "", transient: bool = False):
        super().__init__(message)
        self.transient = transient
