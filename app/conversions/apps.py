"""
Conversions app configuration.

This app owns the conversion event log:
- Seller-registered ad platform destinations (Facebook CAPI, TikTok Events)
- Deduplicated conversion events with per-destination delivery history
- Public intake endpoint for client-side reported conversions
"""

from django.apps import AppConfig


class ConversionsConfig(AppConfig):
    """Configuration for the conversions application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "conversions"
    verbose_name = "Conversions"
