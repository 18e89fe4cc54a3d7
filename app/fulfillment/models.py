"""
Fulfillment models.

This module defines what a completed order leaves behind:
- CustomerAccess: The buyer's access to the purchased product
- SellerBalanceTransaction: Seller credit for the sale
- WebhookSubscription: Seller-configured HTTP endpoints
- WebhookDelivery: One row per webhook POST, kept for audit and replay
- DispatchRecord: Outcome of each fan-out consumer for an order

Design Decisions:
    - CustomerAccess is unique per (customer_email, product); grants upsert
    - Emails are stored normalized (trimmed, lower-case)
    - SellerBalanceTransaction is unique per (order, transaction_type) so a
      repeated fan-out cannot credit a sale twice
    - WebhookDelivery keeps at most 1000 characters of the response body

Usage:
    from fulfillment.models import CustomerAccess

    access = CustomerAccess.objects.get(
        customer_email="ana@example.com",
        product=product,
    )
    access.has_access  # False once expires_at has passed
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

RESPONSE_BODY_LIMIT = 1000


# =============================================================================
# Enums
# =============================================================================


class DispatchStatus(models.TextChoices):
    """Outcome of one fan-out consumer for one order."""

    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"


class BalanceTransactionType(models.TextChoices):
    SALE_REVENUE = "sale_revenue", "Sale Revenue"


class WebhookEvent(models.TextChoices):
    """Events a seller can subscribe a webhook to."""

    PAYMENT_SUCCESS = "payment.success", "Payment Success"


# =============================================================================
# Access
# =============================================================================


class CustomerAccess(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer's access to a product.

    Fields:
        customer_email: Normalized buyer email
        customer_name: Buyer name at the time of the latest grant
        product: Product the access is for
        order: Order that granted (or last renewed) the access
        is_active: False when access was revoked
        granted_at: When the latest grant happened
        expires_at: End of access; null for lifetime products
    """

    customer_email = models.EmailField()

    customer_name = models.CharField(max_length=255, blank=True, default="")

    product = models.ForeignKey(
        "payments.Product",
        on_delete=models.CASCADE,
        related_name="accesses",
    )

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="accesses",
    )

    is_active = models.BooleanField(default=True)

    granted_at = models.DateTimeField(default=timezone.now)

    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-granted_at"]
        verbose_name = "Customer Access"
        verbose_name_plural = "Customer Access"
        constraints = [
            models.UniqueConstraint(
                fields=["customer_email", "product"],
                name="unique_access_per_customer_product",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.customer_email} -> {self.product_id}"

    @property
    def has_access(self) -> bool:
        if not self.is_active:
            return False
        return self.expires_at is None or self.expires_at > timezone.now()


# =============================================================================
# Seller Balance
# =============================================================================


class SellerBalanceTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    Movement on a seller's balance.

    A completed sale credits the seller's commission (amount after the
    platform fee) once per order.
    """

    seller_id = models.UUIDField(db_index=True)

    seller_email = models.EmailField()

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.PROTECT,
        related_name="balance_transactions",
    )

    transaction_type = models.CharField(
        max_length=20,
        choices=BalanceTransactionType.choices,
        default=BalanceTransactionType.SALE_REVENUE,
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)

    currency = models.CharField(max_length=3)

    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Seller Balance Transaction"
        verbose_name_plural = "Seller Balance Transactions"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "transaction_type"],
                name="unique_balance_transaction_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.transaction_type} {self.amount} {self.currency} ({self.seller_email})"


# =============================================================================
# Seller Webhooks
# =============================================================================


class WebhookSubscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    An HTTP endpoint a seller wants notified about sales.

    A subscription with a product only fires for that product; one without
    a product fires for every product of the seller.

    Fields:
        seller_id: Seller owning the subscription
        product: Optional product filter
        url: Target URL
        secret: Sent as X-Webhook-Secret and as a Bearer token
        events: Subscribed event names (e.g. ["payment.success"])
        headers: Extra headers added to every request
        timeout_seconds: Request timeout
        is_active: Inactive subscriptions are never called
    """

    seller_id = models.UUIDField(db_index=True)

    product = models.ForeignKey(
        "payments.Product",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="webhook_subscriptions",
    )

    url = models.URLField(max_length=500)

    secret = models.CharField(max_length=255, blank=True, default="")

    events = models.JSONField(default=list, blank=True)

    headers = models.JSONField(default=dict, blank=True)

    timeout_seconds = models.PositiveIntegerField(default=30)

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Subscription"
        verbose_name_plural = "Webhook Subscriptions"

    def __str__(self) -> str:
        return self.url

    def listens_to(self, event: str) -> bool:
        return event in (self.events or [])


class WebhookDelivery(UUIDPrimaryKeyMixin, BaseModel):
    """
    One webhook POST and its response.

    Fields:
        subscription: Subscription the request was sent for
        order: Order the event is about
        event: Event name
        payload: JSON body that was sent
        response_status_code: HTTP status, 0 when no response was received
        response_body: First 1000 characters of the response body
        success: True for 2xx responses
        error_message: Transport error description, if any
        delivered_at: When the request finished
        replay_of: Original delivery when this one is a replay
    """

    subscription = models.ForeignKey(
        WebhookSubscription,
        on_delete=models.CASCADE,
        related_name="deliveries",
    )

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_deliveries",
    )

    event = models.CharField(max_length=50)

    payload = models.JSONField(default=dict)

    response_status_code = models.PositiveIntegerField(default=0)

    response_body = models.TextField(blank=True, default="")

    success = models.BooleanField(default=False)

    error_message = models.TextField(blank=True, default="")

    delivered_at = models.DateTimeField(default=timezone.now)

    replay_of = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replays",
    )

    class Meta:
        ordering = ["-delivered_at"]
        verbose_name = "Webhook Delivery"
        verbose_name_plural = "Webhook Deliveries"
        indexes = [
            models.Index(
                fields=["subscription", "-delivered_at"],
                name="webhook_delivery_sub_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.event} -> {self.subscription_id} ({self.response_status_code})"


# =============================================================================
# Dispatch Audit
# =============================================================================


class DispatchRecord(BaseModel):
    """
    Outcome of one fan-out consumer for one order.

    Consumers are isolated: a failed record for one consumer says nothing
    about the others.
    """

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.CASCADE,
        related_name="dispatch_records",
    )

    consumer = models.CharField(max_length=50)

    status = models.CharField(max_length=10, choices=DispatchStatus.choices)

    detail = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name = "Dispatch Record"
        verbose_name_plural = "Dispatch Records"
        indexes = [
            models.Index(fields=["order", "consumer"], name="dispatch_order_consumer_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.consumer}: {self.status}"
