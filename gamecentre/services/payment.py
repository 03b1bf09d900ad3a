"""Payment confirmation.

The core only consumes a final 'paid' / 'failed' result; charging a card is
somebody else's job.
"""

import logging
import time
from typing import Protocol

from gamecentre.config import settings

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def confirm_payment(self, session_id: str, method: str) -> str:
        """Return 'paid' or 'failed'."""
        ...


class SimulatedPaymentGateway:
    """Stand-in for a card processor: waits a fixed latency, then confirms."""

    def __init__(self, latency_seconds: float = settings.payment_latency_seconds):
        self.latency_seconds = latency_seconds

    def confirm_payment(self, session_id: str, method: str) -> str:
        if self.latency_seconds > 0:
            time.sleep(self.latency_seconds)
        logger.info("Payment confirmed: session=%s method=%s", session_id, method)
        return "paid"
