import pytest
from ordering.cart.cart import Coupon, DiscountType


@pytest.fixture()
def coupon_factory():
    def _make(code="FLAT20", discount_type=DiscountType.FIXED.value, amount=20.0):
        return Coupon(code=code, discount_type=discount_type, amount=amount)

    return _make
