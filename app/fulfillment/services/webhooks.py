"""
Seller webhook delivery.

On a completed sale every active subscription of the seller that listens to
"payment.success" receives one POST: subscriptions for the sold product and
seller-global ones (no product). Each request is logged as a
WebhookDelivery whatever the outcome. There is no automatic retry; a logged
delivery can be replayed from the admin.

Request body:
    {
        "event": "payment.success",
        "timestamp": "2024-06-01T12:00:00+00:00",
        "email": "ana@example.com",
        "name": "Ana",
        "data": {"order_id": "ORD-1", "product_id": "...", "amount": "10000.00", ...},
        "webhook_id": "<subscription id>",
        "version": "1.0"
    }

Usage:
    from fulfillment.services.webhooks import SellerWebhookService

    with SellerWebhookService() as service:
        deliveries = service.deliver_order(order)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from core.http import HttpClientOwner
from core.services import BaseService
from fulfillment.models import (
    RESPONSE_BODY_LIMIT,
    WebhookDelivery,
    WebhookEvent,
    WebhookSubscription,
)

if TYPE_CHECKING:
    from payments.models import Order

PAYLOAD_VERSION = "1.0"


class SellerWebhookService(HttpClientOwner, BaseService):
    """
    Sends order events to seller-configured URLs.

    Use as a context manager so a client it created gets closed.

    Attributes:
        client: httpx client (injected in tests with a MockTransport)
    """

    def __init__(self, client: httpx.Client | None = None):
        self.set_client(client, timeout=settings.WEBHOOK_DEFAULT_TIMEOUT_SECONDS)

    @staticmethod
    def subscriptions_for(
        order: Order, event: str = WebhookEvent.PAYMENT_SUCCESS
    ) -> list[WebhookSubscription]:
        """Active subscriptions of the order's seller that listen to event."""
        product = order.product
        candidates = WebhookSubscription.objects.filter(
            seller_id=product.seller_id,
            is_active=True,
        ).filter(Q(product=product) | Q(product__isnull=True))
        return [sub for sub in candidates.order_by("created_at") if sub.listens_to(event)]

    @staticmethod
    def build_payload(
        order: Order,
        subscription: WebhookSubscription,
        event: str = WebhookEvent.PAYMENT_SUCCESS,
    ) -> dict[str, Any]:
        product = order.product
        return {
            "event": event,
            "timestamp": timezone.now().isoformat(),
            "email": order.customer_email,
            "name": order.customer_name,
            "data": {
                "order_id": order.order_id,
                "product_id": str(product.pk),
                "product_name": product.name,
                "amount": str(order.amount),
                "currency": order.currency,
                "payment_method": order.payment_method,
                "provider": order.provider,
                "customer_phone": order.customer_phone,
                "completed_at": order.completed_at.isoformat() if order.completed_at else None,
            },
            "webhook_id": str(subscription.pk),
            "version": PAYLOAD_VERSION,
        }

    @staticmethod
    def build_headers(subscription: WebhookSubscription) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": settings.WEBHOOK_USER_AGENT,
        }
        if subscription.secret:
            headers["X-Webhook-Secret"] = subscription.secret
            headers["Authorization"] = f"Bearer {subscription.secret}"
        headers.update({str(k): str(v) for k, v in (subscription.headers or {}).items()})
        return headers

    def deliver_order(
        self, order: Order, event: str = WebhookEvent.PAYMENT_SUCCESS
    ) -> list[WebhookDelivery]:
        """
        POST the event to every matching subscription.

        Returns:
            One WebhookDelivery per subscription, successful or not
        """
        return [
            self.send(
                subscription,
                self.build_payload(order, subscription, event),
                order=order,
                event=event,
            )
            for subscription in self.subscriptions_for(order, event)
        ]

    def send(
        self,
        subscription: WebhookSubscription,
        payload: dict[str, Any],
        *,
        order: Order | None = None,
        event: str = WebhookEvent.PAYMENT_SUCCESS,
        replay_of: WebhookDelivery | None = None,
    ) -> WebhookDelivery:
        """
        Send one request and log it.

        Transport errors are recorded with status code 0, never raised.
        """
        logger = self.get_logger()
        log_context = {
            "subscription_id": str(subscription.pk),
            "webhook_event": event,
            "order_id": order.order_id if order else None,
        }

        status_code = 0
        body = ""
        error_message = ""
        try:
            response = self.client.post(
                subscription.url,
                json=payload,
                headers=self.build_headers(subscription),
                timeout=(
                    subscription.timeout_seconds
                    or settings.WEBHOOK_DEFAULT_TIMEOUT_SECONDS
                ),
            )
            status_code = response.status_code
            body = response.text
        except httpx.HTTPError as e:
            error_message = str(e) or e.__class__.__name__
            logger.warning(
                f"Webhook to {subscription.url} failed: {error_message}",
                extra=log_context,
            )

        success = 200 <= status_code < 300
        delivery = WebhookDelivery.objects.create(
            subscription=subscription,
            order=order,
            event=event,
            payload=payload,
            response_status_code=status_code,
            response_body=body[:RESPONSE_BODY_LIMIT],
            success=success,
            error_message=error_message,
            delivered_at=timezone.now(),
            replay_of=replay_of,
        )

        if success:
            logger.info(f"Webhook delivered to {subscription.url}", extra=log_context)
        elif status_code:
            logger.warning(
                f"Webhook to {subscription.url} answered {status_code}",
                extra={**log_context, "status_code": status_code},
            )
        return delivery

    def replay_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        """Re-send a logged delivery with its original payload."""
        return self.send(
            delivery.subscription,
            delivery.payload,
            order=delivery.order,
            event=delivery.event,
            replay_of=delivery,
        )
