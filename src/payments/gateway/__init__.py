"""Process-wide payment gateway registry.

The composition root asks for the active gateway once at startup. Until a
processor-backed adapter is installed with ``set_gateway``, the in-memory
``FakeGateway`` is handed out.
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway

_active: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    global _active
    if _active is None:
        _active = FakeGateway()
    return _active


def set_gateway(gateway: PaymentGateway) -> None:
    """Install ``gateway`` for every marketplace built afterwards."""
    global _active
    _active = gateway


def reset_gateway() -> None:
    """Forget the installed gateway; the next lookup builds a fresh fake."""
    global _active
    _active = None
