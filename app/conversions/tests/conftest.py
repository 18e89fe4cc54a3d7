"""
Pytest fixtures for conversion tests.

Destinations answer through an httpx MockTransport routed by host, so a
test can give each platform its own sequence of responses.
"""

import httpx
import pytest

from conversions.models import DestinationKind
from conversions.tests.factories import ConversionDestinationFactory
from payments.tests.factories import ProductFactory


@pytest.fixture
def product(db):
    return ProductFactory(name="Excel Masterclass")


@pytest.fixture
def facebook(product):
    return ConversionDestinationFactory(
        seller_id=product.seller_id,
        kind=DestinationKind.FACEBOOK_CAPI,
        pixel_id="111222333",
        access_token="fb-token",
    )


@pytest.fixture
def tiktok(product):
    return ConversionDestinationFactory(
        seller_id=product.seller_id,
        kind=DestinationKind.TIKTOK_EVENTS,
        pixel_id="TTPIXEL1",
        access_token="tt-token",
    )


@pytest.fixture
def purchase(product):
    """Conversion data as the checkout reports it."""
    return {
        "event_id": "purchase_ORD-1",
        "event_name": "Purchase",
        "seller_id": str(product.seller_id),
        "product_id": str(product.pk),
        "value": "10000.00",
        "currency": "aoa",
        "email": " Ana@Example.com ",
        "phone": "+244 923-000-111",
        "first_name": "Ana",
        "last_name": "Silva",
        "external_id": "ORD-1",
        "event_time": 1717243200,
    }


@pytest.fixture
def platforms():
    """
    Scripted platform responses keyed by host.

    Each host maps to a list of responses (or exceptions) consumed one
    per request; requests are recorded per host.

    Example:
        platforms.script(FACEBOOK_HOST, [httpx.Response(500), httpx.Response(200)])
        client = platforms.client()
    """

    class Platforms:
        def __init__(self):
            self.scripts: dict[str, list] = {}
            self.requests: dict[str, list[httpx.Request]] = {}

        def script(self, host, responses):
            self.scripts[host] = list(responses)

        def handle(self, request):
            host = request.url.host
            self.requests.setdefault(host, []).append(request)
            outcome = self.scripts[host].pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        def count(self, host) -> int:
            return len(self.requests.get(host, []))

        def client(self) -> httpx.Client:
            return httpx.Client(transport=httpx.MockTransport(self.handle))

    return Platforms()


@pytest.fixture
def sleeps():
    """Records retry delays instead of sleeping."""
    recorded: list[float] = []
    return recorded


FACEBOOK_HOST = "graph.facebook.test"
TIKTOK_HOST = "tiktok.test"


@pytest.fixture(autouse=True)
def platform_settings(settings):
    settings.FACEBOOK_GRAPH_API_URL = f"https://{FACEBOOK_HOST}"
    settings.FACEBOOK_GRAPH_API_VERSION = "v18.0"
    settings.TIKTOK_EVENTS_API_URL = f"https://{TIKTOK_HOST}/open_api/v1.3/event/track/"
    settings.CONVERSION_MAX_ATTEMPTS = 3
    settings.CONVERSION_RETRY_BASE_DELAY = 1.0
    settings.SITE_URL = "https://shop.example.com"
