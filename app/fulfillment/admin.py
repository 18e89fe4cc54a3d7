"""
Fulfillment admin configuration.

Access rows, balance credits, seller webhooks and the fan-out audit trail.
Deliveries and dispatch records are read-only; a failed webhook delivery
can be replayed with an admin action.
"""

from django.contrib import admin, messages

from fulfillment.models import (
    CustomerAccess,
    DispatchRecord,
    SellerBalanceTransaction,
    WebhookDelivery,
    WebhookSubscription,
)
from fulfillment.services import SellerWebhookService

__all__ = [
    "CustomerAccessAdmin",
    "DispatchRecordAdmin",
    "SellerBalanceTransactionAdmin",
    "WebhookDeliveryAdmin",
    "WebhookSubscriptionAdmin",
]


@admin.register(CustomerAccess)
class CustomerAccessAdmin(admin.ModelAdmin):
    list_display = [
        "customer_email",
        "product",
        "is_active",
        "granted_at",
        "expires_at",
    ]
    list_filter = ["is_active", "granted_at"]
    search_fields = ["customer_email", "customer_name", "product__name"]
    raw_id_fields = ["product", "order"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-granted_at"]


@admin.register(SellerBalanceTransaction)
class SellerBalanceTransactionAdmin(admin.ModelAdmin):
    """Balance credits are written by fan-out only."""

    list_display = ["seller_email", "transaction_type", "amount", "currency", "created_at"]
    list_filter = ["transaction_type", "currency"]
    search_fields = ["seller_email", "order__order_id"]
    readonly_fields = [
        "id",
        "seller_id",
        "seller_email",
        "order",
        "transaction_type",
        "amount",
        "currency",
        "description",
        "created_at",
        "updated_at",
    ]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class WebhookDeliveryInline(admin.TabularInline):
    model = WebhookDelivery
    fk_name = "subscription"
    extra = 0
    fields = ["event", "response_status_code", "success", "delivered_at"]
    readonly_fields = fields
    can_delete = False
    ordering = ["-delivered_at"]
    max_num = 0


@admin.register(WebhookSubscription)
class WebhookSubscriptionAdmin(admin.ModelAdmin):
    list_display = ["url", "seller_id", "product", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["url", "seller_id"]
    raw_id_fields = ["product"]
    readonly_fields = ["id", "created_at", "updated_at"]
    inlines = [WebhookDeliveryInline]


@admin.register(WebhookDelivery)
class WebhookDeliveryAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookDelivery.

    Read-only log of every webhook request; replay re-sends the stored payload.
    """

    list_display = [
        "event",
        "subscription",
        "order",
        "response_status_code",
        "success",
        "delivered_at",
    ]
    list_filter = ["success", "event", "delivered_at"]
    search_fields = ["subscription__url", "order__order_id"]
    readonly_fields = [
        "id",
        "subscription",
        "order",
        "event",
        "payload",
        "response_status_code",
        "response_body",
        "success",
        "error_message",
        "delivered_at",
        "replay_of",
        "created_at",
        "updated_at",
    ]
    actions = ["replay"]

    @admin.action(description="Replay selected deliveries")
    def replay(self, request, queryset):
        succeeded = 0
        total = 0
        with SellerWebhookService() as service:
            for delivery in queryset.select_related("subscription", "order"):
                total += 1
                if service.replay_delivery(delivery).success:
                    succeeded += 1

        level = messages.SUCCESS if succeeded == total else messages.WARNING
        self.message_user(
            request,
            f"Replayed {total} deliveries, {succeeded} succeeded.",
            level=level,
        )

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(DispatchRecord)
class DispatchRecordAdmin(admin.ModelAdmin):
    list_display = ["order", "consumer", "status", "created_at"]
    list_filter = ["status", "consumer"]
    search_fields = ["order__order_id"]
    readonly_fields = ["order", "consumer", "status", "detail", "created_at", "updated_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False
