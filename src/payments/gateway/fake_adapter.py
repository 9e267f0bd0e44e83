"""Configurable fake payment gateway for development and testing.

Simulates a processor without any external calls. Intents are kept in
memory; ``succeed_intent`` plays the part of the customer completing the
payment on the client side. ``configure`` makes subsequent calls fail, and
every call is recorded in ``calls`` for assertions.
"""

from uuid import uuid4

from payments.gateway.port import PaymentGateway, PaymentIntent, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []
        self._intents: dict[str, PaymentIntent] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_payment_intent(self, amount: float, currency: str, metadata: dict | None = None) -> PaymentIntent:
        self.calls.append(
            {
                "method": "create_payment_intent",
                "amount": amount,
                "currency": currency,
                "metadata": metadata or {},
            }
        )
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        intent_id = f"pi_fake_{uuid4().hex[:12]}"
        intent = PaymentIntent(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            amount=amount,
            currency=currency,
            status="requires_payment_method",
        )
        self._intents[intent_id] = intent
        return intent

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        self.calls.append({"method": "retrieve_payment_intent", "intent_id": intent_id})
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        intent = self._intents.get(intent_id)
        if intent is None:
            raise LookupError(f"No such payment intent: {intent_id}")
        return intent

    def succeed_intent(self, intent_id: str) -> None:
        """Mark an intent as paid, as the processor would after card capture."""
        intent = self._intents[intent_id]
        self._intents[intent_id] = PaymentIntent(
            intent_id=intent.intent_id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            status="succeeded",
        )

    def create_refund(
        self,
        transaction_id: str,
        amount: float | None,
        reason: str,
    ) -> RefundResult:
        call = {
            "method": "create_refund",
            "transaction_id": transaction_id,
            "amount": amount,
            "reason": reason,
        }
        self.calls.append(call)

        if self.should_succeed:
            intent = self._intents.get(transaction_id)
            refunded = amount if amount is not None else (intent.amount if intent else None)
            return RefundResult(
                success=True,
                refund_id=f"re_fake_{uuid4().hex[:12]}",
                amount=refunded,
                status="succeeded",
            )
        return RefundResult(
            success=False,
            status="failed",
            failure_reason=self.failure_reason,
        )

    def refund_calls(self) -> list[dict]:
        return [c for c in self.calls if c["method"] == "create_refund"]

    def reset(self) -> None:
        self.calls.clear()
        self._intents.clear()
        self.should_succeed = True
        self.failure_reason = "Card declined"
