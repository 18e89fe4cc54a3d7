"""
Order model: the canonical ledger row for one checkout.

Usage:
    from payments.models import Order
    from payments.state_machines import OrderStatus

    order = Order.objects.create(
        order_id="ORD-8F2K1",
        product=product,
        customer_email="ana@example.com",
        amount=Decimal("5000.00"),
        provider=PaymentProvider.APPYPAY,
        payment_method=PaymentMethod.EXPRESS,
    )

    # Transitions are validated by django-fsm; persistence goes through
    # OrderLedger.transition(), which writes with a conditional UPDATE.
    order.complete()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

from payments.state_machines import OrderStatus, PaymentMethod, PaymentProvider


class Order(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    One purchase of one product by one customer.

    State Flow:
        PENDING -> COMPLETED
        PENDING -> FAILED

    Fields:
        order_id: Merchant-facing order reference (unique)
        product: Product purchased
        customer_*: Buyer identity as entered at checkout
        amount/currency: Amount charged
        payment_method: Method chosen at checkout
        provider: Gateway handling the payment
        provider_transaction_ref: Gateway transaction id (unique once assigned)
        status: Current FSM state
        seller_commission: Seller share, set when the order completes
        completed_at/failed_at: Transition timestamps
        failure_reason: Provider message for failed payments
        expires_at: When the checkout stops waiting for payment

    Note:
        status is a protected FSMField: it cannot be assigned directly on a
        loaded instance. Re-fetch the row instead of refresh_from_db().
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    order_id = models.CharField(
        max_length=100,
        unique=True,
        help_text="Merchant-facing order reference",
    )

    product = models.ForeignKey(
        "payments.Product",
        on_delete=models.PROTECT,
        related_name="orders",
    )

    # ==========================================================================
    # Customer
    # ==========================================================================

    customer_email = models.EmailField(db_index=True)

    customer_name = models.CharField(max_length=255, blank=True, default="")

    customer_phone = models.CharField(max_length=32, blank=True, default="")

    # ==========================================================================
    # Amount & Payment
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount charged to the customer",
    )

    currency = models.CharField(max_length=3, default="AOA")

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
    )

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        db_index=True,
    )

    provider_transaction_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway transaction id (merchantTransactionId, pi_xxx, ...)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
    )

    seller_commission = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Seller share after the platform fee",
    )

    completed_at = models.DateTimeField(null=True, blank=True)

    failed_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(blank=True, default="")

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the checkout stops waiting for payment",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(
                fields=["provider", "status", "created_at"],
                name="order_poll_scan_idx",
            ),
            models.Index(
                fields=["product", "status"],
                name="order_product_status_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="order_amount_not_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_id}, {self.status}, {self.amount} {self.currency})"

    @property
    def is_terminal(self) -> bool:
        return self.status in OrderStatus.terminal()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=OrderStatus.PENDING,
        target=OrderStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark the order as paid.

        Transition: PENDING -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=OrderStatus.PENDING,
        target=OrderStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark the order as failed.

        Transition: PENDING -> FAILED

        Args:
            reason: Provider message, kept for support
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason
