"""
Conversion event log models.

- ConversionDestination: An ad platform endpoint a seller registered
- ConversionEvent: One logical conversion, delivered to every destination

Design Decisions:
    - event_id is client-supplied and unique; it is the dedup key
    - The event row is written as "pending" before any network call, so an
      interrupted delivery stays visible
    - PII in the stored payload is already hashed
    - responses holds the full attempt history per destination:

        {
            "<destination id>": {
                "kind": "facebook_capi",
                "status": "sent",
                "attempts": 1,
                "history": [
                    {"attempt": 1, "status_code": 200, "body": "...",
                     "error": "", "at": "2024-06-01T12:00:00+00:00"}
                ]
            }
        }
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


# =============================================================================
# Enums
# =============================================================================


class DestinationKind(models.TextChoices):
    FACEBOOK_CAPI = "facebook_capi", "Facebook Conversions API"
    TIKTOK_EVENTS = "tiktok_events", "TikTok Events API"


class ConversionStatus(models.TextChoices):
    """
    Delivery status of a conversion event.

    pending -> sent (every destination ok) | partial (mixed) | failed (none ok)
    """

    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    PARTIAL = "partial", "Partial"
    FAILED = "failed", "Failed"


class DestinationStatus(models.TextChoices):
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"


# =============================================================================
# Models
# =============================================================================


class ConversionDestination(UUIDPrimaryKeyMixin, BaseModel):
    """
    An ad platform pixel a seller reports conversions to.

    A destination with a product only receives that product's events;
    one without a product receives every event of the seller.

    Fields:
        seller_id: Seller owning the destination
        product: Optional product filter
        kind: Platform (facebook_capi, tiktok_events)
        pixel_id: Pixel / dataset id on the platform
        access_token: Platform access token
        test_event_code: Routes events to the platform's test console
        is_active: Inactive destinations receive nothing
    """

    seller_id = models.UUIDField(db_index=True)

    product = models.ForeignKey(
        "payments.Product",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="conversion_destinations",
    )

    kind = models.CharField(max_length=20, choices=DestinationKind.choices)

    pixel_id = models.CharField(max_length=100)

    access_token = models.TextField()

    test_event_code = models.CharField(max_length=50, blank=True, default="")

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Conversion Destination"
        verbose_name_plural = "Conversion Destinations"

    def __str__(self) -> str:
        return f"{self.get_kind_display()} {self.pixel_id}"


class ConversionEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One logical conversion reported to the seller's destinations.

    Fields:
        event_id: Client-supplied id, unique (dedup key)
        seller_id: Seller the event belongs to
        product_id: Product the event is about
        event_name: Platform event name (Purchase, InitiateCheckout, ...)
        status: ConversionStatus
        payload: Normalized event with hashed user data
        responses: Per-destination attempt history
        completed_at: When delivery to all destinations finished
    """

    event_id = models.CharField(max_length=255, unique=True)

    seller_id = models.UUIDField(db_index=True)

    product_id = models.UUIDField(null=True, blank=True)

    event_name = models.CharField(max_length=50, default="Purchase")

    status = models.CharField(
        max_length=10,
        choices=ConversionStatus.choices,
        default=ConversionStatus.PENDING,
        db_index=True,
    )

    payload = models.JSONField(default=dict)

    responses = models.JSONField(default=dict, blank=True)

    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Conversion Event"
        verbose_name_plural = "Conversion Events"

    def __str__(self) -> str:
        return f"{self.event_name} {self.event_id} ({self.status})"

    def attempts_for(self, destination_id) -> int:
        return (self.responses or {}).get(str(destination_id), {}).get("attempts", 0)
