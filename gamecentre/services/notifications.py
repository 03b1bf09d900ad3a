"""Lifecycle notifications (approved, expired, session ended, ...).

Sinks are fire-and-forget: nothing in the session core depends on a sink
succeeding.
"""

import logging
from typing import Callable, Protocol

logger = logging.getLogger("gamecentre.events")


class NotificationSink(Protocol):
    def notify(self, kind: str, session_id: str, payload: dict) -> None: ...


class LoggingSink:
    """Writes every event to the ``gamecentre.events`` logger."""

    def notify(self, kind: str, session_id: str, payload: dict) -> None:
        logger.info("[%s] session=%s %s", kind, session_id, payload)


class CallbackSink:
    """Forwards events to a plain callable (e.g. the WebSocket broadcaster)."""

    def __init__(self, callback: Callable[[dict], None]):
        self._callback = callback

    def notify(self, kind: str, session_id: str, payload: dict) -> None:
        self._callback({"type": kind, "session_id": session_id, "data": payload})


class FanoutSink:
    """Delivers each event to every sink; one failing sink does not stop the rest."""

    def __init__(self, *sinks: NotificationSink):
        self.sinks = list(sinks)

    def notify(self, kind: str, session_id: str, payload: dict) -> None:
        for sink in self.sinks:
            try:
                sink.notify(kind, session_id, payload)
            except Exception as e:
                logger.warning("Notification sink %s failed: %s", type(sink).__name__, e)
