"""
Fulfillment app configuration.

This app runs everything that follows a completed order:
- Customer access grants and seller balance credits
- Customer and seller emails, seller push notifications
- Seller webhooks and conversion reporting
"""

from django.apps import AppConfig


class FulfillmentConfig(AppConfig):
    """Configuration for the fulfillment application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "fulfillment"
    verbose_name = "Fulfillment"
