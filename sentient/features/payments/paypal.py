"""
PayPal provider protocol.

Only a demo capture exists: it marks the payment as paid and hands back a
DEMO_<epoch-ms> id. A real integration would confirm the capture through a
webhook instead.
"""
import time
from decimal import Decimal
from typing import Callable, Protocol


class PayPalError(Exception):
    """Raised when a PayPal capture fails."""
    pass


class PayPalProvider(Protocol):

    def capture(self, payment_id: str, amount: Decimal, currency: str) -> str:
        """
        Capture the subscription payment.

        Args:
            payment_id: Internal payment record id
            amount: Amount to capture
            currency: ISO currency code

        Returns:
            Provider payment id

        Raises:
            PayPalError: If the capture fails
        """
        ...


class DemoPayPalProvider:
    """Simulated capture that always succeeds."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def capture(self, payment_id: str, amount: Decimal, currency: str) -> str:
        return f"DEMO_{int(self._clock() * 1000)}"


def get_paypal_provider() -> PayPalProvider:
    return DemoPayPalProvider()
