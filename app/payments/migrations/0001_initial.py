import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "seller_id",
                    models.UUIDField(
                        db_index=True, help_text="Seller account owning this product"
                    ),
                ),
                (
                    "seller_email",
                    models.EmailField(
                        help_text="Seller email for sale notifications",
                        max_length=254,
                    ),
                ),
                (
                    "seller_name",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("name", models.CharField(max_length=255)),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="List price in the product currency",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="AOA", help_text="ISO 4217 currency code", max_length=3
                    ),
                ),
                (
                    "access_duration_type",
                    models.CharField(
                        choices=[
                            ("lifetime", "Lifetime"),
                            ("days", "Days"),
                            ("months", "Months"),
                            ("years", "Years"),
                        ],
                        default="lifetime",
                        max_length=10,
                    ),
                ),
                (
                    "access_duration_value",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Number of days/months/years; ignored for lifetime access",
                        null=True,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "order_id",
                    models.CharField(
                        help_text="Merchant-facing order reference",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("customer_email", models.EmailField(db_index=True, max_length=254)),
                (
                    "customer_name",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "customer_phone",
                    models.CharField(blank=True, default="", max_length=32),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount charged to the customer",
                        max_digits=12,
                    ),
                ),
                ("currency", models.CharField(default="AOA", max_length=3)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("express", "Multicaixa Express"),
                            ("reference", "Payment Reference"),
                            ("mpesa", "M-Pesa"),
                            ("emola", "e-Mola"),
                            ("card", "Card"),
                            ("multibanco", "Multibanco"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[
                            ("appypay", "AppyPay"),
                            ("sislog", "SISLOG"),
                            ("stripe", "Stripe"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                (
                    "provider_transaction_ref",
                    models.CharField(
                        blank=True,
                        help_text="Gateway transaction id (merchantTransactionId, pi_xxx, ...)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "seller_commission",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Seller share after the platform fee",
                        max_digits=12,
                        null=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                (
                    "expires_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the checkout stops waiting for payment",
                        null=True,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="payments.product",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["provider", "status", "created_at"],
                        name="order_poll_scan_idx",
                    ),
                    models.Index(
                        fields=["product", "status"],
                        name="order_product_status_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0)),
                        name="order_amount_not_negative",
                    ),
                ],
            },
        ),
    ]
