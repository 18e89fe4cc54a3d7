"""
Payment admin configuration.

Registers products and orders with the Django admin. Order state changes
go through the reconciler (the "verify with provider" action), never
through the change form.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from payments.models import Order, Product
from payments.services import Reconciler

__all__ = [
    "OrderAdmin",
    "ProductAdmin",
]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin configuration for Product."""

    list_display = [
        "name",
        "seller_email",
        "price_display",
        "access_duration_type",
        "access_duration_value",
        "is_active",
        "created_at",
    ]
    list_filter = ["is_active", "access_duration_type", "currency"]
    search_fields = ["id", "name", "seller_email", "seller_name"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "name", "is_active"),
            },
        ),
        (
            "Seller",
            {
                "fields": ("seller_id", "seller_name", "seller_email"),
            },
        ),
        (
            "Pricing & Access",
            {
                "fields": (
                    "price",
                    "currency",
                    "access_duration_type",
                    "access_duration_value",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def price_display(self, obj: Product) -> str:
        return f"{obj.price:.2f} {obj.currency}"

    price_display.short_description = "Price"


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Provides visibility into orders and their settlement state.
    """

    list_display = [
        "order_id",
        "product",
        "customer_email",
        "amount_display",
        "status",
        "provider",
        "payment_method",
        "created_at",
    ]
    list_filter = ["status", "provider", "payment_method", "currency", "created_at"]
    search_fields = [
        "id",
        "order_id",
        "provider_transaction_ref",
        "customer_email",
    ]
    readonly_fields = [
        "id",
        "status",
        "seller_commission",
        "completed_at",
        "failed_at",
        "failure_reason",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["product"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["verify_with_provider"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "order_id", "product", "status"),
            },
        ),
        (
            "Customer",
            {
                "fields": ("customer_email", "customer_name", "customer_phone"),
            },
        ),
        (
            "Payment Details",
            {
                "fields": (
                    "amount",
                    "currency",
                    "provider",
                    "payment_method",
                    "provider_transaction_ref",
                    "seller_commission",
                ),
            },
        ),
        (
            "State Timestamps",
            {
                "fields": ("completed_at", "failed_at", "expires_at"),
                "classes": ("collapse",),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Order) -> str:
        """Display the amount with its currency."""
        return f"{obj.amount:.2f} {obj.currency}"

    amount_display.short_description = "Amount"

    @admin.action(description="Verify selected orders with provider")
    def verify_with_provider(self, request, queryset):
        """Query each pending order's provider and apply the answer."""
        reconciler = Reconciler()
        settled = 0
        errors = []

        for order in queryset.select_related("product"):
            if order.is_terminal:
                continue
            try:
                result = reconciler.reconcile_order(order)
            except (BaseApplicationError, NotImplementedError) as e:
                errors.append(f"{order.order_id}: {e}")
                continue
            if result.transitioned:
                settled += 1

        self.message_user(request, f"Settled {settled} orders.")
        for error in errors:
            self.message_user(request, error, level=messages.WARNING)

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for orders (audit trail)."""
        return False
