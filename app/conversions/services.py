"""
Conversion event log service.

One logical conversion (identified by a client-supplied event id) is
delivered to every active destination of the seller, each with its own
bounded retry. Re-submitting a known event id never delivers again: the
caller gets the recorded event back.

Delivery rules per destination:
    - up to CONVERSION_MAX_ATTEMPTS attempts (3), exponential backoff from
      CONVERSION_RETRY_BASE_DELAY
    - 4xx answers (429 included) stop immediately
    - timeouts, transport errors and 5xx are retried
    - every attempt is appended to the destination's history

Final status:
    all destinations ok -> sent, none ok -> failed, otherwise partial.
    An event with no destinations is failed with an empty history.

Usage:
    from conversions.services import ConversionService

    result = ConversionService.submit({
        "event_id": "purchase_ORD-1",
        "event_name": "Purchase",
        "product_id": "...",
        "value": "10000.00",
        "currency": "AOA",
        "email": "ana@example.com",
    })
    if result.success:
        result.data.event.status  # "sent", "partial", "failed" or "pending"
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from conversions.clients import BODY_LIMIT, build_user_data, client_for
from conversions.exceptions import DestinationError
from conversions.models import (
    ConversionDestination,
    ConversionEvent,
    ConversionStatus,
    DestinationStatus,
)
from core.retry import RetryExhaustedError, RetryPolicy, call_with_retry
from core.services import BaseService, ServiceResult
from payments.models import Product

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    import httpx
    from django.db.models import QuerySet


def destinations_for(seller_id, product_id=None) -> QuerySet[ConversionDestination]:
    """Active destinations of a seller: product-specific plus seller-global."""
    scope = Q(product__isnull=True)
    if product_id:
        scope |= Q(product_id=product_id)
    return ConversionDestination.objects.filter(
        scope, seller_id=seller_id, is_active=True
    ).order_by("created_at")


def has_destinations(seller_id, product_id=None) -> bool:
    return destinations_for(seller_id, product_id).exists()


def final_status(outcomes: list[str]) -> str:
    if outcomes and all(o == DestinationStatus.SENT for o in outcomes):
        return ConversionStatus.SENT
    if any(o == DestinationStatus.SENT for o in outcomes):
        return ConversionStatus.PARTIAL
    return ConversionStatus.FAILED


def _as_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return None


def build_event(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalized event stored on the log and sent to destinations.

    Identifying fields are hashed here; the clear values are never stored.
    """
    product_id = str(data["product_id"]) if data.get("product_id") else None
    order_id = data.get("order_id") or data.get("external_id") or ""

    custom_data: dict[str, Any] = {
        "value": _as_float(data.get("value")),
        "currency": (data.get("currency") or "").upper() or None,
        "content_type": "product",
        "content_ids": [product_id] if product_id else [],
    }
    if order_id:
        custom_data["order_id"] = str(order_id)
    if data.get("content_name"):
        custom_data["content_name"] = data["content_name"]

    source_url = data.get("event_source_url")
    if not source_url and product_id:
        source_url = f"{settings.SITE_URL.rstrip('/')}/checkout/{product_id}"

    return {
        "event_name": data.get("event_name") or "Purchase",
        "event_time": int(data.get("event_time") or time.time()),
        "event_id": data["event_id"],
        "event_source_url": source_url,
        "user_data": build_user_data(
            email=data.get("email"),
            phone=data.get("phone"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            external_id=data.get("external_id"),
            client_ip=data.get("client_ip"),
            user_agent=data.get("user_agent"),
        ),
        "custom_data": {k: v for k, v in custom_data.items() if v is not None},
    }


@dataclass
class ConversionSubmission:
    """
    Attributes:
        event: The logged event
        created: False when the event id was already known (no delivery)
    """

    event: ConversionEvent
    created: bool


class ConversionService(BaseService):
    """
    Records conversion events and delivers them to ad platforms.

    All methods are class methods - no instance state is maintained.
    """

    @classmethod
    def retry_policy(cls) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=settings.CONVERSION_MAX_ATTEMPTS,
            base_delay=settings.CONVERSION_RETRY_BASE_DELAY,
        )

    @classmethod
    def submit(
        cls,
        data: Mapping[str, Any],
        *,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> ServiceResult[ConversionSubmission]:
        """
        Log a conversion and deliver it, unless its event id is known.

        Args:
            data: event_id (required), seller_id and/or product_id,
                event_name, value, currency, customer identity fields,
                order_id, event_time, event_source_url
            http_client: httpx client shared by the destination clients
            sleep: Sleep function used between retries

        Returns:
            ServiceResult with a ConversionSubmission; failure when the
            event id is missing or the seller cannot be resolved
        """
        logger = cls.get_logger()

        event_id = str(data.get("event_id") or "").strip()
        if not event_id:
            return ServiceResult.failure("event_id is required", "MISSING_EVENT_ID")

        seller_id = data.get("seller_id") or cls._seller_for_product(
            data.get("product_id")
        )
        if not seller_id:
            return ServiceResult.failure(
                "seller_id or a known product_id is required", "UNKNOWN_SELLER"
            )

        event, created = ConversionEvent.objects.get_or_create(
            event_id=event_id,
            defaults={
                "seller_id": seller_id,
                "product_id": data.get("product_id") or None,
                "event_name": data.get("event_name") or "Purchase",
                "status": ConversionStatus.PENDING,
                "payload": build_event({**data, "event_id": event_id}),
            },
        )

        if not created:
            logger.info(
                f"Conversion {event_id} already recorded as {event.status}",
                extra={"event_id": event_id, "conversion_status": event.status},
            )
            return ServiceResult.success(ConversionSubmission(event, created=False))

        cls.deliver(event, http_client=http_client, sleep=sleep)
        return ServiceResult.success(ConversionSubmission(event, created=True))

    @classmethod
    def deliver(
        cls,
        event: ConversionEvent,
        *,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> ConversionEvent:
        """Deliver a logged event to every destination and record the outcome."""
        logger = cls.get_logger()
        policy = cls.retry_policy()

        responses: dict[str, Any] = {}
        for destination in destinations_for(event.seller_id, event.product_id):
            responses[str(destination.pk)] = cls._deliver_to(
                destination, event.payload, policy, http_client, sleep
            )

        event.responses = responses
        event.status = final_status([r["status"] for r in responses.values()])
        event.completed_at = timezone.now()
        event.save(update_fields=["responses", "status", "completed_at", "updated_at"])

        logger.info(
            f"Conversion {event.event_id} {event.status}",
            extra={
                "event_id": event.event_id,
                "conversion_status": event.status,
                "destinations": len(responses),
            },
        )
        return event

    @classmethod
    def _deliver_to(
        cls,
        destination: ConversionDestination,
        payload: dict[str, Any],
        policy: RetryPolicy,
        http_client: httpx.Client | None,
        sleep: Callable[[float], None],
    ) -> dict[str, Any]:
        history: list[dict[str, Any]] = []
        last_response: list[httpx.Response] = []

        def attempt() -> httpx.Response:
            response = client.send(destination, payload)
            last_response.append(response)
            return response

        def record(number: int, error: Exception | None) -> None:
            entry: dict[str, Any] = {"attempt": number, "at": timezone.now().isoformat()}
            if error is None:
                response = last_response[-1]
                entry.update(
                    status_code=response.status_code,
                    body=response.text[:BODY_LIMIT],
                    error="",
                )
            else:
                entry.update(
                    status_code=getattr(error, "status_code", 0),
                    body=getattr(error, "body", ""),
                    error=str(error),
                )
            history.append(entry)

        status = DestinationStatus.SENT
        try:
            with client_for(destination, http_client) as client:
                call_with_retry(attempt, policy, sleep=sleep, on_attempt=record)
        except (DestinationError, RetryExhaustedError) as e:
            status = DestinationStatus.FAILED
            cls.get_logger().warning(
                f"Conversion delivery to {destination} failed: {e}",
                extra={
                    "destination_id": str(destination.pk),
                    "event_id": payload.get("event_id"),
                    "attempts": len(history),
                },
            )

        return {
            "kind": destination.kind,
            "status": status,
            "attempts": len(history),
            "history": history,
        }

    @staticmethod
    def _seller_for_product(product_id) -> uuid.UUID | None:
        try:
            pk = uuid.UUID(str(product_id))
        except (TypeError, ValueError):
            return None
        return Product.objects.filter(pk=pk).values_list("seller_id", flat=True).first()
