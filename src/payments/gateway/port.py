"""Payment gateway port (abstract interface).

Defines the contract the ordering core uses to reach the payment processor:
payment intents for the client-side checkout flow and refunds for
cancellations. Adapters never retry; retry policy belongs to the processor
integration itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentIntent:
    """A payment intent as seen by the processor."""

    intent_id: str
    client_secret: str | None
    amount: float
    currency: str
    status: str  # requires_payment_method | processing | succeeded | canceled


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    refund_id: str | None = None
    amount: float | None = None
    status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_payment_intent(self, amount: float, currency: str, metadata: dict | None = None) -> PaymentIntent:
        """Create a payment intent for ``amount`` in ``currency``."""
        ...

    @abstractmethod
    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the current state of a payment intent."""
        ...

    @abstractmethod
    def create_refund(
        self,
        transaction_id: str,
        amount: float | None,
        reason: str,
    ) -> RefundResult:
        """Refund a captured payment. ``amount=None`` refunds the full charge."""
        ...
