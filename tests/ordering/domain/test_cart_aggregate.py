"""Tests for Cart aggregate creation, line management and derived totals."""

from datetime import UTC, datetime, timedelta

import pytest
from ordering.cart.cart import Cart
from ordering.cart.events import CartCleared, CartItemAdded, CartItemQuantityUpdated, CartItemRemoved
from ordering.shared.variant import Variant
from protean.exceptions import ValidationError


def _make_cart(tax_rate=0.18):
    return Cart.create(user_id="user-1", tax_rate=tax_rate, retention_days=30)


class TestCartCreation:
    def test_create_starts_empty(self):
        cart = _make_cart()
        assert cart.is_empty
        assert cart.subtotal == 0.0
        assert cart.total == 0.0

    def test_create_sets_owner(self):
        cart = _make_cart()
        assert str(cart.user_id) == "user-1"

    def test_create_sets_expiry_from_retention(self):
        cart = _make_cart()
        window = cart.expires_at - cart.created_at
        assert window == timedelta(days=30)

    def test_create_generates_id(self):
        assert _make_cart().id is not None


class TestAddLine:
    def test_add_line_computes_totals(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)

        assert cart.subtotal == 200.0
        assert cart.tax == 36.0
        assert cart.total == 236.0

    def test_same_product_merges_quantity(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)
        cart.add_line("prod-a", 3, 100.0)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5

    def test_merge_refreshes_price_snapshot(self):
        cart = _make_cart()
        cart.add_line("prod-a", 1, 100.0)
        cart.add_line("prod-a", 1, 90.0)

        assert cart.items[0].unit_price == 90.0
        assert cart.subtotal == 180.0

    def test_different_variants_are_distinct_lines(self):
        cart = _make_cart()
        cart.add_line("prod-a", 1, 100.0, Variant(name="size", value="M"))
        cart.add_line("prod-a", 1, 100.0, Variant(name="size", value="L"))

        assert len(cart.items) == 2

    def test_structurally_equal_variants_merge(self):
        cart = _make_cart()
        cart.add_line("prod-a", 1, 100.0, Variant(name="size", value="M"))
        cart.add_line("prod-a", 2, 100.0, Variant(name="size", value="M"))

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3

    def test_variant_line_does_not_match_plain_line(self):
        cart = _make_cart()
        cart.add_line("prod-a", 1, 100.0)
        cart.add_line("prod-a", 1, 100.0, Variant(name="size", value="M"))

        assert len(cart.items) == 2

    def test_lines_keep_insertion_order(self):
        cart = _make_cart()
        cart.add_line("prod-b", 1, 10.0)
        cart.add_line("prod-a", 1, 10.0)

        assert [str(i.product_id) for i in cart.ordered_lines()] == ["prod-b", "prod-a"]

    def test_zero_quantity_rejected(self):
        cart = _make_cart()
        with pytest.raises(ValidationError) as exc:
            cart.add_line("prod-a", 0, 100.0)
        assert "quantity" in exc.value.messages

    def test_add_line_raises_event(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)

        events = [e for e in cart._events if isinstance(e, CartItemAdded)]
        assert len(events) == 1
        assert events[0].line_quantity == 2


class TestSetLineQuantity:
    def test_overwrites_quantity_and_price(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)
        cart.set_line_quantity("prod-a", 5, 80.0)

        assert cart.items[0].quantity == 5
        assert cart.subtotal == 400.0

    def test_zero_removes_line(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)
        cart.set_line_quantity("prod-a", 0, 100.0)

        assert cart.is_empty
        assert cart.total == 0.0

    def test_missing_line_rejected(self):
        cart = _make_cart()
        with pytest.raises(ValidationError):
            cart.set_line_quantity("prod-a", 2, 100.0)

    def test_raises_quantity_updated_event(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)
        cart._events.clear()
        cart.set_line_quantity("prod-a", 4, 100.0)

        event = cart._events[0]
        assert isinstance(event, CartItemQuantityUpdated)
        assert event.previous_quantity == 2
        assert event.new_quantity == 4


class TestRemoveAndClear:
    def test_remove_line(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)
        cart.add_line("prod-b", 1, 50.0)

        assert cart.remove_line("prod-a") is True
        assert [str(i.product_id) for i in cart.items] == ["prod-b"]
        assert cart.subtotal == 50.0

    def test_remove_absent_line_is_noop(self):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)
        cart._events.clear()

        assert cart.remove_line("prod-z") is False
        assert len(cart.items) == 1
        assert cart._events == []

    def test_remove_raises_event(self):
        cart = _make_cart()
        cart.add_line("prod-a", 1, 100.0)
        cart.remove_line("prod-a")

        assert any(isinstance(e, CartItemRemoved) for e in cart._events)

    def test_clear_drops_items_and_coupon(self, coupon_factory):
        cart = _make_cart()
        cart.add_line("prod-a", 2, 100.0)
        cart.apply_coupon(coupon_factory())
        cart.clear()

        assert cart.is_empty
        assert cart.coupon is None
        assert cart.total == 0.0
        assert isinstance(cart._events[-1], CartCleared)


class TestTotalsInvariant:
    def test_totals_balance_after_mixed_mutations(self):
        cart = _make_cart()
        cart.add_line("prod-a", 3, 19.99)
        cart.add_line("prod-b", 1, 249.5, Variant(name="colour", value="red"))
        cart.set_line_quantity("prod-a", 1, 21.0)
        cart.add_line("prod-c", 4, 5.25)
        cart.remove_line("prod-b", Variant(name="colour", value="red"))

        expected_subtotal = round(sum(i.unit_price * i.quantity for i in cart.items), 2)
        assert cart.subtotal == expected_subtotal
        assert cart.total == pytest.approx(cart.subtotal + cart.tax - cart.discount)

    def test_unbalanced_total_rejected(self):
        cart = _make_cart()
        cart.add_line("prod-a", 1, 100.0)
        with pytest.raises(ValidationError) as exc:
            cart.total = 1.0
        assert "total" in exc.value.messages


class TestExpiry:
    def test_not_expired_within_window(self):
        assert _make_cart().is_expired() is False

    def test_expired_after_window(self):
        cart = _make_cart()
        assert cart.is_expired(datetime.now(UTC) + timedelta(days=31)) is True

    def test_touch_resets_window(self):
        cart = _make_cart()
        cart.expires_at = datetime.now(UTC) - timedelta(days=1)
        cart.touch(30)
        assert cart.is_expired() is False
