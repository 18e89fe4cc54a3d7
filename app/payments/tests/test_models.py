"""
Tests for payment models.

Tests cover:
- Product access expiry for each duration type
- Order FSM transitions and the terminal-state guard
- Database constraints
"""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.db import IntegrityError
from django_fsm import TransitionNotAllowed

from payments.models import Order
from payments.state_machines import AccessDurationType, OrderStatus
from payments.tests.factories import OrderFactory, ProductFactory

GRANTED_AT = datetime(2024, 1, 31, 12, 0, tzinfo=dt_timezone.utc)


# =============================================================================
# Product Tests
# =============================================================================


class TestProductAccessExpiry:
    """Tests for Product.access_expires_at."""

    def test_lifetime_never_expires(self, db):
        product = ProductFactory(access_duration_type=AccessDurationType.LIFETIME)

        assert product.access_expires_at(GRANTED_AT) is None

    def test_days(self, db):
        product = ProductFactory(
            access_duration_type=AccessDurationType.DAYS, access_duration_value=30
        )

        assert product.access_expires_at(GRANTED_AT) == datetime(
            2024, 3, 1, 12, 0, tzinfo=dt_timezone.utc
        )

    def test_months_clamps_to_month_end(self, db):
        """Jan 31 + 1 month lands on the last day of February."""
        product = ProductFactory(
            access_duration_type=AccessDurationType.MONTHS, access_duration_value=1
        )

        assert product.access_expires_at(GRANTED_AT) == datetime(
            2024, 2, 29, 12, 0, tzinfo=dt_timezone.utc
        )

    def test_years(self, db):
        product = ProductFactory(
            access_duration_type=AccessDurationType.YEARS, access_duration_value=2
        )

        assert product.access_expires_at(GRANTED_AT) == datetime(
            2026, 1, 31, 12, 0, tzinfo=dt_timezone.utc
        )


# =============================================================================
# Order Transition Tests
# =============================================================================


class TestOrderTransitions:
    """Tests for Order state machine transitions."""

    def test_new_order_is_pending(self, pending_order):
        assert pending_order.status == OrderStatus.PENDING
        assert pending_order.is_terminal is False

    def test_pending_to_completed(self, pending_order):
        pending_order.complete()
        pending_order.save()

        order = Order.objects.get(pk=pending_order.pk)
        assert order.status == OrderStatus.COMPLETED
        assert order.completed_at is not None
        assert order.is_terminal is True

    def test_pending_to_failed_keeps_reason(self, pending_order):
        pending_order.fail(reason="Insufficient balance")
        pending_order.save()

        order = Order.objects.get(pk=pending_order.pk)
        assert order.status == OrderStatus.FAILED
        assert order.failed_at is not None
        assert order.failure_reason == "Insufficient balance"

    @pytest.mark.parametrize("fixture_name", ["completed_order", "failed_order"])
    def test_terminal_orders_cannot_move(self, request, fixture_name):
        order = request.getfixturevalue(fixture_name)

        with pytest.raises(TransitionNotAllowed):
            order.complete()
        with pytest.raises(TransitionNotAllowed):
            order.fail()

    def test_status_cannot_be_assigned_directly(self, pending_order):
        with pytest.raises(AttributeError):
            pending_order.status = OrderStatus.COMPLETED


# =============================================================================
# Constraint Tests
# =============================================================================


class TestOrderConstraints:
    """Tests for uniqueness and check constraints."""

    def test_order_id_unique(self, pending_order):
        with pytest.raises(IntegrityError):
            OrderFactory(order_id=pending_order.order_id)

    def test_provider_reference_unique(self, pending_order):
        with pytest.raises(IntegrityError):
            OrderFactory(provider_transaction_ref=pending_order.provider_transaction_ref)

    def test_orders_without_reference_allowed(self, db):
        OrderFactory(provider_transaction_ref=None)
        OrderFactory(provider_transaction_ref=None)

        assert Order.objects.filter(provider_transaction_ref__isnull=True).count() == 2

    def test_negative_amount_rejected(self, db):
        with pytest.raises(IntegrityError):
            OrderFactory(amount=Decimal("-1.00"))
