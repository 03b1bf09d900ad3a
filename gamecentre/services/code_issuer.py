"""One-time code issuing and verification.

A code is bound to an approved session together with its expiry. Expiry and
the attempt limit are checked independently: waiting does not reset
attempts, and attempts never extend the expiry.
"""

import logging
from datetime import datetime, timedelta

from sqlmodel import col

from gamecentre.config import settings
from gamecentre.models.session import GameSession
from gamecentre.services.errors import (
    AttemptsExhausted,
    CodeExpired,
    InvalidCode,
    InvalidState,
    SessionNotFound,
)
from gamecentre.services.scheduler import Clock, as_utc
from gamecentre.services.store import RecordStore, StoreTransaction
from gamecentre.utils.security import codes_match, generate_code

logger = logging.getLogger(__name__)


class CodeIssuer:
    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        expire_seconds: int = settings.code_expire_seconds,
        max_attempts: int = settings.code_max_attempts,
    ):
        self.store = store
        self.clock = clock
        self.expire_seconds = expire_seconds
        self.max_attempts = max_attempts

    def issue(self, tx: StoreTransaction, session_id: str) -> tuple[str, datetime]:
        """Bind a fresh code to the session. Returns (code, expires_at)."""
        code = generate_code()
        expires_at = self.clock.now() + timedelta(seconds=self.expire_seconds)
        # Code and expiry always land in the same statement
        tx.update_fields(
            GameSession,
            session_id,
            {"code": code, "code_expires_at": expires_at, "code_attempts": 0},
        )
        logger.info("Code issued: session=%s expires_at=%s", session_id, expires_at.isoformat())
        return code, expires_at

    def verify(self, session_id: str, candidate: str) -> str:
        """Check ``candidate`` against the session's code.

        Every guess reserves an attempt before it is compared, so concurrent
        guesses can never compare more than ``max_attempts`` times in total.
        Returns the matching code. Raises CodeExpired, AttemptsExhausted or
        InvalidCode (with remaining attempts) otherwise.
        """
        record = self.store.get(GameSession, session_id)
        if not record:
            raise SessionNotFound(f"Session {session_id} not found")
        if record.status == "rejected" and record.closed_reason == "code_expired":
            raise CodeExpired("Code has expired. Please start a new request")
        if record.status != "approved" or record.code is None:
            raise InvalidState(f"Session {session_id} is {record.status}, not approved")

        if self.clock.now() > as_utc(record.code_expires_at):
            logger.warning("Code expired: session=%s", session_id)
            raise CodeExpired("Code has expired. Please start a new request")

        attempts = self._reserve_attempt(session_id)
        if attempts is None:
            current = self.store.get(GameSession, session_id)
            if current.closed_reason == "code_expired":
                raise CodeExpired("Code has expired. Please start a new request")
            if current.status != "approved":
                raise InvalidState(f"Session {session_id} is {current.status}, not approved")
            logger.warning("Verification refused, attempts exhausted: session=%s", session_id)
            raise AttemptsExhausted("Maximum attempts reached. Please start a new request")

        if codes_match(candidate, record.code):
            return record.code

        remaining = max(self.max_attempts - attempts, 0)
        logger.warning("Invalid code: session=%s attempts=%d", session_id, attempts)
        if remaining == 0:
            raise AttemptsExhausted("Maximum attempts reached. Please start a new request")
        raise InvalidCode(f"Invalid code. {remaining} attempts remaining", remaining_attempts=remaining)

    def _reserve_attempt(self, session_id: str) -> int | None:
        """Count one attempt if any are left. Returns the new count, or None."""
        with self.store.transaction() as tx:
            reserved = tx.update_where(
                GameSession,
                session_id,
                {"code_attempts": GameSession.code_attempts + 1},
                col(GameSession.status) == "approved",
                col(GameSession.code_attempts) < self.max_attempts,
            )
            if not reserved:
                return None
            return tx.get(GameSession, session_id).code_attempts
