"""
Serializers for the conversion intake API.

Serializers:
    ConversionEventRequestSerializer: Validates a reported conversion
    ConversionEventResponseSerializer: Recorded event status
"""

from __future__ import annotations

from rest_framework import serializers

from conversions.models import ConversionEvent


class ConversionEventRequestSerializer(serializers.Serializer):
    """
    Conversion reported by the storefront or another server.

    event_id is mandatory and doubles as the dedup key. Either seller_id or
    product_id must identify the seller.
    """

    event_id = serializers.CharField(max_length=255)
    event_name = serializers.CharField(max_length=50, required=False, default="Purchase")
    seller_id = serializers.UUIDField(required=False)
    product_id = serializers.UUIDField(required=False)
    order_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    value = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    first_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    last_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    external_id = serializers.CharField(max_length=255, required=False, allow_blank=True)
    event_time = serializers.IntegerField(required=False, min_value=0)
    event_source_url = serializers.URLField(required=False, allow_blank=True)

    def validate_event_id(self, value: str) -> str:
        value = value.strip()
        if not value:
            raise serializers.ValidationError("event_id cannot be blank.")
        return value

    def validate(self, attrs: dict) -> dict:
        if not attrs.get("seller_id") and not attrs.get("product_id"):
            raise serializers.ValidationError(
                {"product_id": ["Either seller_id or product_id is required."]}
            )
        return attrs


class ConversionEventResponseSerializer(serializers.ModelSerializer):
    """Recorded status of a conversion event."""

    destinations = serializers.SerializerMethodField()

    class Meta:
        model = ConversionEvent
        fields = [
            "event_id",
            "event_name",
            "status",
            "destinations",
            "created_at",
            "completed_at",
        ]
        read_only_fields = fields

    def get_destinations(self, obj: ConversionEvent) -> dict[str, dict]:
        """Final status and attempt count per destination (no response bodies)."""
        return {
            destination_id: {
                "kind": entry.get("kind"),
                "status": entry.get("status"),
                "attempts": entry.get("attempts", 0),
            }
            for destination_id, entry in (obj.responses or {}).items()
        }
