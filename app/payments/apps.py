"""
Payments app configuration.

This app owns the order ledger:
- Products and orders
- Provider adapters (AppyPay, SISLOG, Stripe)
- Callback endpoint, reconciler and pending-order poller
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
