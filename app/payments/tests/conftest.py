"""
Pytest fixtures for payment tests.

Provides orders in each state, explicit provider configs, httpx clients
backed by MockTransport and a recording dispatcher that stands in for the
real fan-out.

Usage:
    def test_complete(pending_order):
        pending_order.complete()
        assert pending_order.status == OrderStatus.COMPLETED
"""

from decimal import Decimal

import httpx
import pytest

from core.retry import RetryPolicy
from payments.adapters import ProviderConfig
from payments.state_machines import OrderStatus, PaymentMethod, PaymentProvider
from payments.tests.factories import OrderFactory, ProductFactory


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def product(db):
    """Lifetime-access product priced 10 000 AOA."""
    return ProductFactory()


@pytest.fixture
def pending_order(db, product):
    """AppyPay express order awaiting payment."""
    return OrderFactory(
        product=product,
        order_id="ORD-APPY-1",
        provider_transaction_ref="MTX00000001",
    )


@pytest.fixture
def sislog_order(db, product):
    """SISLOG M-Pesa order awaiting payment."""
    return OrderFactory(
        product=product,
        order_id="ORD-SIS-1",
        provider=PaymentProvider.SISLOG,
        payment_method=PaymentMethod.MPESA,
        provider_transaction_ref="SISTX-1",
        currency="MZN",
        amount=Decimal("1500.00"),
    )


@pytest.fixture
def completed_order(db, product):
    """Order already settled as paid."""
    return OrderFactory(
        product=product,
        order_id="ORD-DONE-1",
        provider_transaction_ref="MTX00000099",
        status=OrderStatus.COMPLETED,
        seller_commission=Decimal("9101.00"),
    )


@pytest.fixture
def failed_order(db, product):
    """Order already settled as failed."""
    return OrderFactory(
        product=product,
        order_id="ORD-FAIL-1",
        provider_transaction_ref="MTX00000098",
        status=OrderStatus.FAILED,
        failure_reason="Declined",
    )


# =============================================================================
# Provider Config Fixtures
# =============================================================================


FAST_RETRY = RetryPolicy(max_attempts=3, base_delay=0.01)


@pytest.fixture
def appypay_config():
    return ProviderConfig(
        name=PaymentProvider.APPYPAY,
        api_url="https://appypay.test/v2.0",
        auth_url="https://auth.appypay.test/oauth2/token",
        client_id="client-id",
        client_secret="client-secret",
        resource="resource-id",
        timeout_seconds=5.0,
        retry_policy=FAST_RETRY,
    )


@pytest.fixture
def sislog_config():
    return ProviderConfig(
        name=PaymentProvider.SISLOG,
        api_url="https://sislog.test/api",
        username="merchant",
        api_key="sislog-key",
        status_path="/mobile/reference/check",
        timeout_seconds=5.0,
        retry_policy=FAST_RETRY,
    )


@pytest.fixture
def stripe_config():
    return ProviderConfig(
        name=PaymentProvider.STRIPE,
        api_key="sk_test_123",
        timeout_seconds=5.0,
        retry_policy=FAST_RETRY,
    )


# =============================================================================
# HTTP & Timing Fixtures
# =============================================================================


@pytest.fixture
def mock_http():
    """
    Build an httpx.Client whose requests are answered by a handler.

    Example:
        client = mock_http(lambda request: httpx.Response(200, json={}))
    """

    def _create(handler) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(handler))

    return _create


@pytest.fixture
def sleeps():
    """Records retry delays instead of sleeping."""
    recorded: list[float] = []
    return recorded


# =============================================================================
# Dispatcher Fixtures
# =============================================================================


class RecordingDispatcher:
    """Fan-out stand-in that remembers which orders it was asked to dispatch."""

    def __init__(self):
        self.orders = []

    def dispatch(self, order):
        self.orders.append(order)
        return []


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()
