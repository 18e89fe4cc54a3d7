"""
Pytest fixtures for fulfillment tests.

Provides a completed order, seller webhook subscriptions and helpers that
swap the real HTTP clients for httpx MockTransport ones.
"""

from decimal import Decimal

import httpx
import pytest
from django.utils import timezone

from fulfillment.services import PushService, SellerWebhookService
from fulfillment.services import consumers
from fulfillment.tests.factories import WebhookSubscriptionFactory
from payments.state_machines import OrderStatus
from payments.tests.factories import OrderFactory, ProductFactory


@pytest.fixture
def product(db):
    return ProductFactory(
        name="Excel Masterclass",
        seller_email="seller@example.com",
        seller_name="Maria Seller",
    )


@pytest.fixture
def completed_order(db, product):
    """Order just settled as paid, as the reconciler hands it to fan-out."""
    return OrderFactory(
        product=product,
        order_id="ORD-FAN-1",
        customer_email="Ana@Example.com",
        customer_name="Ana Silva",
        status=OrderStatus.COMPLETED,
        seller_commission=Decimal("9101.00"),
        completed_at=timezone.now(),
    )


@pytest.fixture
def subscription(product):
    """Seller-global payment.success subscription."""
    return WebhookSubscriptionFactory(seller_id=product.seller_id)


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
def webhook_requests(monkeypatch, mock_http):
    """
    Route seller webhooks to a handler and record the requests.

    Example:
        requests = webhook_requests(lambda request: httpx.Response(200))
    """
    recorded: list[httpx.Request] = []

    def _install(handler):
        def _record(request):
            recorded.append(request)
            return handler(request)

        client = mock_http(_record)
        monkeypatch.setattr(
            consumers, "SellerWebhookService", lambda: SellerWebhookService(client=client)
        )
        return recorded

    return _install


@pytest.fixture
def onesignal(settings, monkeypatch, mock_http):
    """
    Configure OneSignal and answer its requests with a handler.

    Example:
        requests = onesignal(lambda request: httpx.Response(200, json={"id": "n-1"}))
    """
    settings.ONESIGNAL_APP_ID = "app-123"
    settings.ONESIGNAL_API_KEY = "rest-key"
    recorded: list[httpx.Request] = []

    def _install(handler):
        def _record(request):
            recorded.append(request)
            return handler(request)

        client = mock_http(_record)

        def _from_settings(cls, client=client):
            return PushService(
                api_url=settings.ONESIGNAL_API_URL,
                app_id=settings.ONESIGNAL_APP_ID,
                api_key=settings.ONESIGNAL_API_KEY,
                client=client,
            )

        monkeypatch.setattr(PushService, "from_settings", classmethod(_from_settings))
        return recorded

    return _install
