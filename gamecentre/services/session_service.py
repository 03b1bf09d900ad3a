"""Gaming session lifecycle.

    pending  --approve-->     approved  --verify-->  active  --end/timer-->  completed
    pending  --reject-->      rejected
    approved --code expiry--> rejected

Every transition is a compare-and-set on ``status`` inside one store
transaction, so of two racing callers exactly one wins and the other gets
InvalidState. Timers and notifications are only touched after the commit.
Each session owns at most one timer at a time: the code-expiry timer while
approved, then the duration countdown while active.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.engine import Engine
from sqlmodel import col

from gamecentre.config import settings
from gamecentre.models.customer import Customer
from gamecentre.models.device import Device
from gamecentre.models.session import GameSession
from gamecentre.services.code_issuer import CodeIssuer
from gamecentre.services.device_registry import DeviceRegistry
from gamecentre.services.errors import (
    InvalidAddress,
    InvalidAmount,
    InvalidDuration,
    InvalidName,
    InvalidPaymentMethod,
    InvalidPhone,
    InvalidState,
    NotFoundError,
    PaymentFailed,
    SessionNotFound,
    StoreError,
)
from gamecentre.services.notifications import NotificationSink
from gamecentre.services.payment import PaymentGateway
from gamecentre.services.scheduler import Clock, TimerService, as_utc
from gamecentre.services.store import RecordStore, StoreTransaction

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"[0-9]{10}")
NAME_MAX_LENGTH = 100
ADDRESS_MAX_LENGTH = 200
PAYMENT_METHODS = ("online", "cash")
END_RETRY_SECONDS = 5.0


@dataclass
class SessionView:
    """A session with its customer, device and countdown state."""
    session: GameSession
    customer: Customer | None
    device: Device | None
    remaining_seconds: int = 0
    progress_percent: float = 0.0
    warning: bool = False


class SessionEngine:
    def __init__(
        self,
        store: RecordStore,
        timers: TimerService,
        notifier: NotificationSink,
        payments: PaymentGateway,
        clock: Clock | None = None,
        duration_prices: dict[int, float] | None = None,
        warning_seconds: int = settings.session_warning_seconds,
        auto_reject_expired: bool = settings.auto_reject_expired_codes,
        code_expire_seconds: int = settings.code_expire_seconds,
        max_attempts: int = settings.code_max_attempts,
    ):
        self.store = store
        self.timers = timers
        self.notifier = notifier
        self.payments = payments
        self.clock = clock or timers.clock
        self.duration_prices = duration_prices or dict(settings.duration_prices)
        self.warning_seconds = warning_seconds
        self.auto_reject_expired = auto_reject_expired
        self.devices = DeviceRegistry(store)
        self.codes = CodeIssuer(
            store,
            self.clock,
            expire_seconds=code_expire_seconds,
            max_attempts=max_attempts,
        )

    # --- Transitions ---

    def request(
        self,
        name: str,
        phone: str,
        device_id: str,
        duration_minutes: int,
        amount: float | None = None,
        address: str | None = None,
    ) -> GameSession:
        """Create a pending session for a customer. Validates before writing anything."""
        name = (name or "").strip()
        if not name or len(name) > NAME_MAX_LENGTH:
            raise InvalidName(f"Name must be 1-{NAME_MAX_LENGTH} characters")

        if not isinstance(phone, str) or not PHONE_PATTERN.fullmatch(phone):
            raise InvalidPhone("Please enter a valid 10-digit phone number")

        address = address or None
        if address is not None and len(address) > ADDRESS_MAX_LENGTH:
            raise InvalidAddress(f"Address must be at most {ADDRESS_MAX_LENGTH} characters")

        if duration_minutes not in self.duration_prices:
            options = ", ".join(str(d) for d in sorted(self.duration_prices))
            raise InvalidDuration(f"Duration must be one of: {options} minutes")

        device = self.devices.get_device(device_id)

        if amount is None:
            amount = self.duration_prices[duration_minutes]
        elif amount < 0:
            raise InvalidAmount("Amount cannot be negative")

        with self.store.transaction() as tx:
            customer = Customer(name=name, phone=phone, address=address)
            tx.insert(customer)
            record = GameSession(
                customer_id=customer.id,
                device_id=device.id,
                duration_minutes=duration_minutes,
                amount=round(float(amount), 2),
                created_at=self.clock.now(),
            )
            tx.insert(record)

        logger.info(
            "Session requested: session=%s device=%s duration=%dmin amount=%.2f",
            record.id, device.id, duration_minutes, record.amount,
        )
        return record

    def set_payment_method(self, session_id: str, method: str) -> GameSession:
        """Record how the customer pays. Online payments are confirmed synchronously.

        A paid session is settled: neither another charge nor a switch to
        cash is accepted.
        """
        if method not in PAYMENT_METHODS:
            raise InvalidPaymentMethod(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")

        if self.get_session(session_id).payment_status == "paid":
            logger.warning("Payment refused, already paid: session=%s", session_id)
            raise InvalidState("Session is already paid")

        with self.store.transaction() as tx:
            self._transition(
                tx,
                session_id,
                ("pending", "approved"),
                {"payment_method": method},
                "set payment on",
                expect={"payment_status": "pending"},
            )

        if method == "online":
            result = self.payments.confirm_payment(session_id, method)
            if result != "paid":
                logger.warning("Payment failed: session=%s result=%s", session_id, result)
                raise PaymentFailed("Online payment was not confirmed")
            recorded = self.store.update_fields(
                GameSession,
                session_id,
                {"payment_status": "paid"},
                expect={
                    "status": ("pending", "approved"),
                    "payment_method": "online",
                    "payment_status": "pending",
                },
            )
            if not recorded:
                current = self.get_session(session_id)
                logger.warning(
                    "Payment confirmed but not recorded: session=%s status=%s method=%s",
                    session_id, current.status, current.payment_method,
                )
                raise InvalidState(f"Session changed during payment and is now {current.status}")

        logger.info("Payment method set: session=%s method=%s", session_id, method)
        return self.get_session(session_id)

    def approve(self, session_id: str) -> GameSession:
        """Approve a pending request and issue its one-time code.

        The returned record is the one committed with the code, so it still
        carries the code even if the session moves on right away.
        """
        with self.store.transaction() as tx:
            self._transition(tx, session_id, "pending", {"status": "approved"}, "approve")
            code, expires_at = self.codes.issue(tx, session_id)
            record = tx.get(GameSession, session_id)

        self.timers.schedule_at(session_id, expires_at, self._on_code_expired, session_id)
        logger.info("Session approved: session=%s", session_id)
        self._notify("approved", session_id, {
            "code": code,
            "expires_at": expires_at.isoformat(),
        })
        return record

    def reject(self, session_id: str) -> GameSession:
        with self.store.transaction() as tx:
            self._transition(
                tx, session_id, "pending", {"status": "rejected", "closed_reason": "rejected"}, "reject",
            )

        logger.info("Session rejected: session=%s", session_id)
        self._notify("rejected", session_id, {"reason": "rejected"})
        return self.get_session(session_id)

    def verify_and_activate(self, session_id: str, candidate: str) -> GameSession:
        """Check the customer's code; on success start the clock and unlock the device."""
        code = self.codes.verify(session_id, candidate)

        now = self.clock.now()
        with self.store.transaction() as tx:
            record = tx.get(GameSession, session_id)
            end_time = now + timedelta(minutes=record.duration_minutes)
            activated = tx.update_fields(
                GameSession,
                session_id,
                {
                    "status": "active",
                    "start_time": now,
                    "end_time": end_time,
                    "code": None,
                    "code_expires_at": None,
                    # The matching guess is not a failed attempt
                    "code_attempts": GameSession.code_attempts - 1,
                },
                expect={"status": "approved", "code": code},
            )
            if not activated:
                current = tx.get(GameSession, session_id)
                raise InvalidState(f"Cannot activate a session that is {current.status}")
            # Raises AlreadyHeld and rolls back the activation with it
            self.devices.unlock(tx, record.device_id, session_id)

        self._arm_countdown(session_id, end_time)
        logger.info(
            "Session active: session=%s device=%s until=%s",
            session_id, record.device_id, end_time.isoformat(),
        )
        return self.get_session(session_id)

    def end_session(self, session_id: str, reason: str = "ended") -> GameSession:
        """Complete an active session and relock its device.

        Ending an already completed session is a no-op.
        """
        record = self.get_session(session_id)
        if record.status == "completed":
            return record

        with self.store.transaction() as tx:
            ended = tx.update_fields(
                GameSession,
                session_id,
                {"status": "completed", "closed_reason": reason},
                expect={"status": "active"},
            )
            if ended:
                self.devices.lock(tx, record.device_id, session_id)
            else:
                current = tx.get(GameSession, session_id)
                if current.status != "completed":
                    logger.warning("End refused: session=%s status=%s", session_id, current.status)
                    raise InvalidState(f"Cannot end a session that is {current.status}")

        if not ended:
            # Lost the race to another end call
            return current

        self.timers.cancel(session_id)
        logger.info("Session completed: session=%s reason=%s", session_id, reason)
        self._notify("session_ended", session_id, {
            "device_id": record.device_id,
            "reason": reason,
        })
        return self.get_session(session_id)

    def expire(self, session_id: str) -> GameSession:
        """Close an approved session whose code lapsed without being used."""
        record = self.get_session(session_id)
        if record.status != "approved":
            return record

        expires_at = as_utc(record.code_expires_at)
        if expires_at and expires_at > self.clock.now():
            # Fired early; try again at the real deadline
            self.timers.schedule_at(session_id, expires_at, self._on_code_expired, session_id)
            return record

        if not self.auto_reject_expired:
            self._notify("expired", session_id, {"auto_rejected": False})
            return record

        with self.store.transaction() as tx:
            expired = tx.update_fields(
                GameSession,
                session_id,
                {
                    "status": "rejected",
                    "closed_reason": "code_expired",
                    "code": None,
                    "code_expires_at": None,
                },
                expect={"status": "approved"},
            )
        if expired:
            logger.info("Session expired: session=%s", session_id)
            self._notify("expired", session_id, {"auto_rejected": True})
        return self.get_session(session_id)

    def recover(self) -> int:
        """Re-arm timers for open sessions after a restart. Returns how many were handled."""
        now = self.clock.now()
        handled = 0
        open_sessions = self.store.list(
            GameSession, col(GameSession.status).in_(["approved", "active"]),
        )
        for record in open_sessions:
            if record.status == "approved":
                expires_at = as_utc(record.code_expires_at)
                if expires_at is None or expires_at <= now:
                    self.expire(record.id)
                else:
                    self.timers.schedule_at(record.id, expires_at, self._on_code_expired, record.id)
            else:
                end_time = as_utc(record.end_time)
                if end_time <= now:
                    self.end_session(record.id, reason="timer")
                else:
                    self._arm_countdown(record.id, end_time)
            handled += 1

        if handled:
            logger.info("Recovered %d open session(s)", handled)
        return handled

    def shutdown(self) -> None:
        self.timers.shutdown()

    # --- Read side ---

    def get_session(self, session_id: str) -> GameSession:
        record = self.store.get(GameSession, session_id)
        if not record:
            raise SessionNotFound(f"Session {session_id} not found")
        return record

    def list_sessions(self, status: str | None = None) -> list[GameSession]:
        """Sessions newest first, optionally filtered by status."""
        where = [GameSession.status == status] if status else []
        return self.store.list(GameSession, *where, order_by=col(GameSession.created_at).desc())

    def session_view(self, session_id: str | GameSession) -> SessionView:
        record = session_id if isinstance(session_id, GameSession) else self.get_session(session_id)
        view = SessionView(
            session=record,
            customer=self.store.get(Customer, record.customer_id),
            device=self.store.get(Device, record.device_id),
        )

        if record.status == "active":
            total = record.duration_minutes * 60
            remaining = (as_utc(record.end_time) - self.clock.now()).total_seconds()
            view.remaining_seconds = max(int(remaining), 0)
            view.progress_percent = round((total - view.remaining_seconds) / total * 100, 1)
            view.warning = view.remaining_seconds <= self.warning_seconds
        elif record.status == "completed":
            view.progress_percent = 100.0
        return view

    # --- Internals ---

    def _transition(
        self,
        tx: StoreTransaction,
        session_id: str,
        expected: str | tuple[str, ...],
        fields: dict,
        action: str,
        expect: dict | None = None,
    ) -> None:
        guards = {"status": expected, **(expect or {})}
        try:
            moved = tx.update_fields(GameSession, session_id, fields, expect=guards)
        except NotFoundError:
            raise SessionNotFound(f"Session {session_id} not found")
        if not moved:
            current = tx.get(GameSession, session_id)
            logger.warning("Cannot %s session=%s: status=%s", action, session_id, current.status)
            raise InvalidState(f"Cannot {action} a session that is {current.status}")

    def _arm_countdown(self, session_id: str, end_time: datetime) -> None:
        remaining = (end_time - self.clock.now()).total_seconds()
        if remaining > self.warning_seconds:
            warn_at = end_time - timedelta(seconds=self.warning_seconds)
            self.timers.schedule_at(session_id, warn_at, self._on_warning, session_id, end_time)
        else:
            self.timers.schedule_at(session_id, end_time, self._on_duration_elapsed, session_id)

    def _on_warning(self, session_id: str, end_time: datetime) -> None:
        record = self.store.get(GameSession, session_id)
        if not record or record.status != "active":
            return
        self._notify("expiring_soon", session_id, {
            "end_time": end_time.isoformat(),
            "remaining_seconds": self.warning_seconds,
        })
        self.timers.schedule_at(session_id, end_time, self._on_duration_elapsed, session_id)

    def _on_duration_elapsed(self, session_id: str) -> None:
        try:
            self.end_session(session_id, reason="timer")
        except InvalidState as e:
            logger.info("Duration elapsed for session=%s, nothing to end: %s", session_id, e)
        except StoreError as e:
            # The device must not stay unlocked; keep trying
            logger.error("Could not end session=%s, retrying in %.0fs: %s", session_id, END_RETRY_SECONDS, e)
            self.timers.schedule(session_id, END_RETRY_SECONDS, self._on_duration_elapsed, session_id)

    def _on_code_expired(self, session_id: str) -> None:
        self.expire(session_id)

    def _notify(self, kind: str, session_id: str, payload: dict) -> None:
        try:
            self.notifier.notify(kind, session_id, payload)
        except Exception as e:
            logger.warning("Notification %s failed for session=%s: %s", kind, session_id, e)


def build_session_engine(
    bind: Engine,
    notifier: NotificationSink,
    payments: PaymentGateway,
    clock: Clock | None = None,
) -> SessionEngine:
    """Wire a SessionEngine with the real store and thread timers."""
    clock = clock or Clock()
    return SessionEngine(
        store=RecordStore(bind),
        timers=TimerService(clock),
        notifier=notifier,
        payments=payments,
        clock=clock,
    )
