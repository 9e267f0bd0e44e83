"""Tests for settings, typed errors, actors and variant selectors."""

import pytest
from ordering.config import OrderingSettings, get_settings
from ordering.errors import (
    Conflict,
    EmptyCart,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    OrderingError,
    ReconciliationRequired,
    Unavailable,
    UpstreamFailure,
)
from ordering.shared.actor import Actor, Role
from ordering.shared.variant import Variant, variant_from_dict
from pydantic import ValidationError as SettingsError


class TestOrderingSettings:
    def test_defaults(self):
        settings = OrderingSettings(_env_file=None)
        assert settings.tax_rate == 0.18
        assert settings.currency == "INR"
        assert settings.free_shipping_threshold == 500.0
        assert settings.flat_shipping_fee == 50.0
        assert settings.cart_retention_days == 30
        assert settings.default_page_size == 10
        assert settings.max_page_size == 100

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ORDERING_TAX_RATE", "0.05")
        monkeypatch.setenv("ORDERING_CART_RETENTION_DAYS", "7")

        settings = OrderingSettings(_env_file=None)
        assert settings.tax_rate == 0.05
        assert settings.cart_retention_days == 7

    def test_tax_rate_bounds(self):
        with pytest.raises(SettingsError):
            OrderingSettings(_env_file=None, tax_rate=1.5)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestErrors:
    def test_messages_shape(self):
        error = NotFound("Order not found", field="order_id")
        assert error.message == "Order not found"
        assert error.messages == {"order_id": ["Order not found"]}
        assert str(error) == "Order not found"

    def test_insufficient_stock_carries_quantities(self):
        error = InsufficientStock(product_id="prod-a", requested=3, available=1, name="Kettle")
        assert "Kettle" in error.message
        assert "Requested: 3, available: 1" in error.message
        assert error.messages == {"quantity": [error.message]}

    def test_invalid_transition_default_message(self):
        error = InvalidTransition("shipped", "confirmed")
        assert error.message == "Cannot change status from shipped to confirmed"
        assert (error.source, error.target) == ("shipped", "confirmed")

    def test_reconciliation_is_a_conflict(self):
        error = ReconciliationRequired(order_id="ord-1", message="Stock drifted")
        assert isinstance(error, Conflict)
        assert error.order_id == "ord-1"

    @pytest.mark.parametrize(
        "error",
        [
            NotFound("x"),
            Unavailable("x", product_id="prod-a"),
            EmptyCart(),
            Conflict("x"),
            UpstreamFailure("x"),
        ],
    )
    def test_all_share_the_base_class(self, error):
        assert isinstance(error, OrderingError)
        assert error.code != OrderingError.code


class TestActor:
    def test_factories(self):
        assert Actor.customer("user-1") == Actor(id="user-1", role=Role.CUSTOMER)
        assert Actor.vendor("vendor-1").role == Role.VENDOR
        assert Actor.admin("admin-1").is_admin
        assert not Actor.vendor("vendor-1").is_admin


class TestVariant:
    def test_from_dict(self):
        variant = variant_from_dict({"name": "size", "value": "M"})
        assert variant == Variant(name="size", value="M")
        assert variant.to_label() == "size: M"

    def test_empty_inputs(self):
        assert variant_from_dict(None) is None
        assert variant_from_dict({}) is None

    def test_passthrough(self):
        variant = Variant(name="color", value="red")
        assert variant_from_dict(variant) is variant
