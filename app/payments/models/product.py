"""
Product model: the digital good a seller lists for sale.

Settlement only needs the parts of a product that downstream consumers read:
who the seller is (for commission notices and webhook subscriptions) and
how long a purchase grants access.
"""

from __future__ import annotations

from datetime import datetime

from dateutil.relativedelta import relativedelta
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import AccessDurationType


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    A product sold through checkout.

    Fields:
        seller_id: Id of the seller account owning the product
        seller_email: Where sale notices go; also the push external id
        seller_name: Display name used in emails
        name: Product name shown to customers
        price: List price (orders store their own charged amount)
        currency: ISO 4217 currency code
        access_duration_type/value: Access window granted by a purchase
        is_active: Whether the product is still on sale
    """

    seller_id = models.UUIDField(
        db_index=True,
        help_text="Seller account owning this product",
    )

    seller_email = models.EmailField(
        help_text="Seller email for sale notifications",
    )

    seller_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
    )

    name = models.CharField(max_length=255)

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="List price in the product currency",
    )

    currency = models.CharField(
        max_length=3,
        default="AOA",
        help_text="ISO 4217 currency code",
    )

    access_duration_type = models.CharField(
        max_length=10,
        choices=AccessDurationType.choices,
        default=AccessDurationType.LIFETIME,
    )

    access_duration_value = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Number of days/months/years; ignored for lifetime access",
    )

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        verbose_name = "Product"
        verbose_name_plural = "Products"

    def __str__(self) -> str:
        return f"{self.name} ({self.price} {self.currency})"

    def access_expires_at(self, granted_at: datetime) -> datetime | None:
        """
        When access granted at granted_at ends, or None for lifetime access.

        Month and year arithmetic is calendar-aware (Jan 31 + 1 month is the
        last day of February).
        """
        value = self.access_duration_value or 1

        if self.access_duration_type == AccessDurationType.DAYS:
            return granted_at + relativedelta(days=value)
        if self.access_duration_type == AccessDurationType.MONTHS:
            return granted_at + relativedelta(months=value)
        if self.access_duration_type == AccessDurationType.YEARS:
            return granted_at + relativedelta(years=value)
        return None
