"""Clock and keyed countdown timers.

Timers run as daemon threads. Each key holds at most one pending timer;
arming a key again replaces (cancels) the previous one.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


def as_utc(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class Clock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TimerService:
    """One-shot delayed callbacks keyed by an id (the session id)."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or Clock()
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, delay: float, callback: Callable, *args) -> None:
        timer = threading.Timer(max(delay, 0.0), self._fire)
        timer.args = (key, timer, callback, args)
        timer.daemon = True
        timer.name = f"timer-{key}"

        with self._lock:
            previous = self._timers.get(key)
            self._timers[key] = timer
        if previous:
            previous.cancel()
        timer.start()
        logger.debug("Timer armed: key=%s delay=%.1fs", key, delay)

    def schedule_at(self, key: str, when: datetime, callback: Callable, *args) -> None:
        delay = (as_utc(when) - self.clock.now()).total_seconds()
        self.schedule(key, delay, callback, *args)

    def cancel(self, key: str) -> bool:
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer:
            timer.cancel()
            logger.debug("Timer cancelled: key=%s", key)
            return True
        return False

    def pending(self, key: str) -> bool:
        with self._lock:
            return key in self._timers

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _fire(self, key: str, timer: threading.Timer, callback: Callable, args: tuple) -> None:
        with self._lock:
            # Superseded or cancelled after the wait already elapsed
            if self._timers.get(key) is not timer:
                return
            del self._timers[key]
        try:
            callback(*args)
        except Exception:
            logger.exception("Timer callback failed: key=%s", key)
