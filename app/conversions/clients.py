"""
Ad platform clients.

Each client sends one already-normalized event to one destination and
raises DestinationError on anything but a 2xx answer. Retrying is the
caller's job (core.retry).

Normalized event (stored as ConversionEvent.payload):
    {
        "event_name": "Purchase",
        "event_time": 1717243200,
        "event_id": "purchase_ORD-1",
        "event_source_url": "https://shop.example.com/checkout/<product id>",
        "user_data": {"em": "<sha256>", "ph": "<sha256>", ...},
        "custom_data": {"value": 10000.0, "currency": "AOA", ...}
    }

Usage:
    from conversions.clients import client_for

    with client_for(destination) as client:
        response = client.send(destination, event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from django.conf import settings

from conversions.exceptions import DestinationError
from conversions.models import DestinationKind
from core.helpers import digits_only, hash_string, normalize_email
from core.http import HttpClientOwner

if TYPE_CHECKING:
    from conversions.models import ConversionDestination

logger = logging.getLogger(__name__)

BODY_LIMIT = 1000


# =============================================================================
# PII Hashing
# =============================================================================


def hash_pii(value: str | None) -> str | None:
    """SHA-256 of the trimmed, lower-cased value; None for blanks."""
    normalized = (value or "").strip().lower()
    if not normalized:
        return None
    return hash_string(normalized)


def build_user_data(
    email: str | None = None,
    phone: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    external_id: str | None = None,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> dict[str, str]:
    """
    User data block with every identifying field hashed.

    Phone numbers are reduced to digits before hashing. IP and user agent
    are sent as-is, as the platforms require them unhashed.
    """
    hashed = {
        "em": hash_pii(normalize_email(email)),
        "ph": hash_pii(digits_only(phone)),
        "fn": hash_pii(first_name),
        "ln": hash_pii(last_name),
        "external_id": hash_pii(external_id),
    }
    user_data = {key: value for key, value in hashed.items() if value}
    if client_ip:
        user_data["client_ip_address"] = client_ip
    if user_agent:
        user_data["client_user_agent"] = user_agent
    return user_data


# =============================================================================
# Clients
# =============================================================================


class DestinationClient(HttpClientOwner):
    """
    Base class for ad platform clients.

    Use as a context manager; an httpx client created here is closed on
    exit, an injected one is left to its owner.

    Attributes:
        client: httpx client (injected in tests with a MockTransport)
        timeout_seconds: Per-request timeout
    """

    kind: str = ""

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout_seconds: float | None = None,
    ):
        self.timeout_seconds = timeout_seconds or settings.CONVERSION_TIMEOUT_SECONDS
        self.set_client(client, timeout=self.timeout_seconds)

    def build_request(
        self, destination: ConversionDestination, event: dict[str, Any]
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        """Return (url, json body, headers) for one event."""
        raise NotImplementedError

    def send(
        self, destination: ConversionDestination, event: dict[str, Any]
    ) -> httpx.Response:
        """
        Send one event (one attempt).

        Raises:
            DestinationError: Timeout, transport error or 5xx (retryable),
                any 4xx including 429 (permanent)
        """
        url, body, headers = self.build_request(destination, event)

        try:
            response = self.client.post(
                url, json=body, headers=headers, timeout=self.timeout_seconds
            )
        except httpx.TimeoutException as e:
            raise DestinationError(
                f"{self.kind} did not answer in {self.timeout_seconds}s",
                is_retryable=True,
            ) from e
        except httpx.TransportError as e:
            raise DestinationError(
                f"Could not reach {self.kind}: {e}", is_retryable=True
            ) from e

        status_code = response.status_code
        if status_code >= 500:
            raise DestinationError(
                f"{self.kind} answered {status_code}",
                status_code=status_code,
                body=response.text[:BODY_LIMIT],
                is_retryable=True,
            )
        if status_code >= 400:
            raise DestinationError(
                f"{self.kind} rejected the event ({status_code})",
                status_code=status_code,
                body=response.text[:BODY_LIMIT],
            )

        self.check_body(response)
        return response

    def check_body(self, response: httpx.Response) -> None:
        """Hook for platforms that report errors inside a 200 body."""


class FacebookConversionsClient(DestinationClient):
    """Facebook (Meta) Conversions API."""

    kind = DestinationKind.FACEBOOK_CAPI

    def build_request(self, destination, event):
        url = (
            f"{settings.FACEBOOK_GRAPH_API_URL.rstrip('/')}/"
            f"{settings.FACEBOOK_GRAPH_API_VERSION}/{destination.pixel_id}/events"
        )
        body: dict[str, Any] = {
            "data": [{**event, "action_source": "website"}],
            "access_token": destination.access_token,
        }
        if destination.test_event_code:
            body["test_event_code"] = destination.test_event_code
        return url, body, {"Content-Type": "application/json"}


# TikTok uses its own names for the standard events
TIKTOK_EVENT_NAMES = {
    "Purchase": "CompletePayment",
    "InitiateCheckout": "InitiateCheckout",
    "AddPaymentInfo": "AddPaymentInfo",
    "ViewContent": "ViewContent",
}


class TikTokEventsClient(DestinationClient):
    """TikTok Events API (v1.3)."""

    kind = DestinationKind.TIKTOK_EVENTS

    def build_request(self, destination, event):
        user_data = event.get("user_data", {})
        custom_data = event.get("custom_data", {})

        user = {
            "email": user_data.get("em"),
            "phone": user_data.get("ph"),
            "external_id": user_data.get("external_id"),
            "ip": user_data.get("client_ip_address"),
            "user_agent": user_data.get("client_user_agent"),
        }
        tiktok_event = {
            "event": TIKTOK_EVENT_NAMES.get(event["event_name"], event["event_name"]),
            "event_time": event["event_time"],
            "event_id": event["event_id"],
            "user": {key: value for key, value in user.items() if value},
            "properties": {
                "currency": custom_data.get("currency"),
                "value": custom_data.get("value"),
                "content_type": "product",
                "contents": [
                    {"content_id": content_id}
                    for content_id in custom_data.get("content_ids", [])
                ],
                "order_id": custom_data.get("order_id"),
            },
        }
        if event.get("event_source_url"):
            tiktok_event["page"] = {"url": event["event_source_url"]}

        body: dict[str, Any] = {
            "event_source": "web",
            "event_source_id": destination.pixel_id,
            "data": [tiktok_event],
        }
        if destination.test_event_code:
            body["test_event_code"] = destination.test_event_code

        headers = {
            "Content-Type": "application/json",
            "Access-Token": destination.access_token,
        }
        return settings.TIKTOK_EVENTS_API_URL, body, headers

    def check_body(self, response):
        try:
            code = response.json().get("code", 0)
        except ValueError:
            return
        if code:
            raise DestinationError(
                f"tiktok_events rejected the event (code {code})",
                status_code=response.status_code,
                body=response.text[:BODY_LIMIT],
            )


CLIENT_CLASSES: dict[str, type[DestinationClient]] = {
    DestinationKind.FACEBOOK_CAPI: FacebookConversionsClient,
    DestinationKind.TIKTOK_EVENTS: TikTokEventsClient,
}


def client_for(
    destination: ConversionDestination, http_client: httpx.Client | None = None
) -> DestinationClient:
    """Client for a destination's platform."""
    return CLIENT_CLASSES[destination.kind](client=http_client)
