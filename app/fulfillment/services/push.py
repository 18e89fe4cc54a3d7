"""
Seller push notifications through OneSignal.

Sellers are identified in OneSignal by an external id equal to their
account email, so a sale notice needs no device tokens on our side.

Configuration:
    ONESIGNAL_API_URL, ONESIGNAL_APP_ID, ONESIGNAL_API_KEY

Usage:
    from fulfillment.services.push import PushService

    with PushService.from_settings() as push:
        if push.is_configured:
            push.send_to_external_id(
                "seller@example.com",
                heading="New sale",
                content="Course X sold for 10 000 AOA",
                data={"order_id": "ORD-1"},
            )
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from django.conf import settings

from core.http import HttpClientOwner
from fulfillment.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class PushService(HttpClientOwner):
    """
    OneSignal REST client.

    Use as a context manager so a client it created gets closed.

    Attributes:
        api_url: Notifications endpoint
        app_id: OneSignal application id
        api_key: REST API key (sent as Basic auth)
        client: httpx client (injected in tests with a MockTransport)
    """

    def __init__(
        self,
        api_url: str,
        app_id: str,
        api_key: str,
        client: httpx.Client | None = None,
        timeout_seconds: float = 10.0,
    ):
        self.api_url = api_url
        self.app_id = app_id
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.set_client(client, timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, client: httpx.Client | None = None) -> PushService:
        return cls(
            api_url=settings.ONESIGNAL_API_URL,
            app_id=settings.ONESIGNAL_APP_ID,
            api_key=settings.ONESIGNAL_API_KEY,
            client=client,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self.api_key)

    def send_to_external_id(
        self,
        external_id: str,
        heading: str,
        content: str,
        data: dict[str, Any] | None = None,
    ) -> str:
        """
        Push a notification to every device of one user.

        Returns:
            OneSignal notification id

        Raises:
            DeliveryError: Request failed (is_permanent for 4xx)
        """
        payload = {
            "app_id": self.app_id,
            "include_aliases": {"external_id": [external_id]},
            "target_channel": "push",
            "headings": {"en": heading},
            "contents": {"en": content},
            "data": data or {},
        }
        headers = {
            "Authorization": f"Basic {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self.client.post(
                self.api_url,
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise DeliveryError("OneSignal did not answer in time", "timeout") from e
        except httpx.TransportError as e:
            raise DeliveryError(f"Could not reach OneSignal: {e}", "connection_error") from e

        if response.status_code == 429:
            raise DeliveryError("OneSignal rate limit reached", "rate_limited")
        if response.status_code in (401, 403):
            raise DeliveryError(
                "OneSignal rejected the API key", "invalid_credentials", is_permanent=True
            )
        if response.status_code >= 500:
            raise DeliveryError(
                f"OneSignal answered {response.status_code}", "provider_unavailable"
            )
        if response.status_code >= 400:
            raise DeliveryError(
                f"OneSignal rejected the notification: {response.text[:200]}",
                "invalid_recipient",
                is_permanent=True,
            )

        notification_id = ""
        try:
            notification_id = str(response.json().get("id") or "")
        except ValueError:
            logger.debug("OneSignal response had no JSON body")

        logger.info(
            "Push notification sent",
            extra={"notification_id": notification_id, "external_id": external_id},
        )
        return notification_id
