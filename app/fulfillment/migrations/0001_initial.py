import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


def timestamp_fields():
    return [
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
    ]


def uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CustomerAccess",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                ("customer_email", models.EmailField(max_length=254)),
                (
                    "customer_name",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("is_active", models.BooleanField(default=True)),
                (
                    "granted_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="accesses",
                        to="payments.order",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="accesses",
                        to="payments.product",
                    ),
                ),
            ],
            options={
                "verbose_name": "Customer Access",
                "verbose_name_plural": "Customer Access",
                "ordering": ["-granted_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("customer_email", "product"),
                        name="unique_access_per_customer_product",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="SellerBalanceTransaction",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                ("seller_id", models.UUIDField(db_index=True)),
                ("seller_email", models.EmailField(max_length=254)),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[("sale_revenue", "Sale Revenue")],
                        default="sale_revenue",
                        max_length=20,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(max_length=3)),
                (
                    "description",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balance_transactions",
                        to="payments.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Seller Balance Transaction",
                "verbose_name_plural": "Seller Balance Transactions",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("order", "transaction_type"),
                        name="unique_balance_transaction_per_order",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookSubscription",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                ("seller_id", models.UUIDField(db_index=True)),
                ("url", models.URLField(max_length=500)),
                ("secret", models.CharField(blank=True, default="", max_length=255)),
                ("events", models.JSONField(blank=True, default=list)),
                ("headers", models.JSONField(blank=True, default=dict)),
                ("timeout_seconds", models.PositiveIntegerField(default=30)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="webhook_subscriptions",
                        to="payments.product",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Subscription",
                "verbose_name_plural": "Webhook Subscriptions",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookDelivery",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                ("event", models.CharField(max_length=50)),
                ("payload", models.JSONField(default=dict)),
                ("response_status_code", models.PositiveIntegerField(default=0)),
                ("response_body", models.TextField(blank=True, default="")),
                ("success", models.BooleanField(default=False)),
                ("error_message", models.TextField(blank=True, default="")),
                (
                    "delivered_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="webhook_deliveries",
                        to="payments.order",
                    ),
                ),
                (
                    "replay_of",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="replays",
                        to="fulfillment.webhookdelivery",
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="deliveries",
                        to="fulfillment.webhooksubscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Delivery",
                "verbose_name_plural": "Webhook Deliveries",
                "ordering": ["-delivered_at"],
                "indexes": [
                    models.Index(
                        fields=["subscription", "-delivered_at"],
                        name="webhook_delivery_sub_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DispatchRecord",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                *timestamp_fields(),
                ("consumer", models.CharField(max_length=50)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("skipped", "Skipped"),
                        ],
                        max_length=10,
                    ),
                ),
                ("detail", models.TextField(blank=True, default="")),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="dispatch_records",
                        to="payments.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Dispatch Record",
                "verbose_name_plural": "Dispatch Records",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["order", "consumer"],
                        name="dispatch_order_consumer_idx",
                    )
                ],
            },
        ),
    ]
