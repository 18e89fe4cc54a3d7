"""
Conversions admin configuration.

Destinations are editable; conversion events are a read-only audit log.
Events left pending by an interrupted delivery can be redelivered.
"""

from django.contrib import admin, messages

from conversions.models import ConversionDestination, ConversionEvent, ConversionStatus
from conversions.services import ConversionService

__all__ = [
    "ConversionDestinationAdmin",
    "ConversionEventAdmin",
]


@admin.register(ConversionDestination)
class ConversionDestinationAdmin(admin.ModelAdmin):
    list_display = [
        "kind",
        "pixel_id",
        "seller_id",
        "product",
        "is_active",
        "created_at",
    ]
    list_filter = ["kind", "is_active"]
    search_fields = ["pixel_id", "seller_id"]
    raw_id_fields = ["product"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(ConversionEvent)
class ConversionEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for ConversionEvent.

    The responses field holds every delivery attempt per destination.
    """

    list_display = [
        "event_id",
        "event_name",
        "status",
        "seller_id",
        "created_at",
        "completed_at",
    ]
    list_filter = ["status", "event_name", "created_at"]
    search_fields = ["event_id", "seller_id"]
    readonly_fields = [
        "id",
        "event_id",
        "seller_id",
        "product_id",
        "event_name",
        "status",
        "payload",
        "responses",
        "completed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    actions = ["redeliver_pending"]

    @admin.action(description="Redeliver selected pending events")
    def redeliver_pending(self, request, queryset):
        """Deliver events whose first delivery never finished."""
        pending = queryset.filter(status=ConversionStatus.PENDING)
        count = 0
        for event in pending:
            ConversionService.deliver(event)
            count += 1

        skipped = queryset.count() - count
        self.message_user(request, f"Redelivered {count} events.")
        if skipped:
            self.message_user(
                request,
                f"{skipped} events were already processed and were left untouched.",
                level=messages.WARNING,
            )

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
